import time


class ScheduledTask:
    """Handle for one pending callback. Cancelling is idempotent."""

    def __init__(self, name: str, delay: float, due_at: float):
        self.name = name
        self.delay = delay
        self.due_at = due_at
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        return f"<ScheduledTask {self.name} due={self.due_at:.1f} pending={self.pending}>"


def cancel_task(task) -> None:
    if task is not None:
        task.cancel()


class BackgroundScheduler:
    """Runs delayed callbacks on Socket.IO background tasks.

    Works with every async mode Flask-SocketIO supports because it only uses
    ``start_background_task`` and ``sleep`` from the server object. Callbacks
    still have to re-validate the session state they act on; cancellation only
    stops a task that has not started its callback yet.
    """

    def __init__(self, socketio, logger, heartbeat_sec: int = 0, clock=time.time):
        self.socketio = socketio
        self.logger = logger
        self.heartbeat_sec = heartbeat_sec
        self.clock = clock

    def schedule(self, delay: float, callback, *args, name: str = 'task') -> ScheduledTask:
        task = ScheduledTask(name, delay, self.clock() + delay)
        self.logger.info(f"[timer-set] {name} delay={delay}s due={task.due_at:.3f}")
        self.socketio.start_background_task(self._worker, task, callback, args)
        return task

    def _worker(self, task: ScheduledTask, callback, args) -> None:
        hb = self.heartbeat_sec
        remaining = task.delay
        while remaining > 0 and not task.cancelled:
            step = min(hb, remaining) if hb and hb > 0 else remaining
            self.socketio.sleep(step)
            remaining -= step
            if hb and hb > 0 and not task.cancelled:
                self.logger.info(f"[timer-heartbeat] {task.name} remaining={max(0, remaining)}s")
        if task.cancelled:
            self.logger.info(f"[timer-abort] {task.name} cancelled")
            return
        task.fired = True
        self.logger.info(f"[timer-fire] {task.name}")
        try:
            callback(*args)
        except Exception:
            self.logger.exception(f"[timer-error] {task.name} callback failed")
