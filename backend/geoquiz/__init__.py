import click
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config
from geoquiz.services.games import GameService

allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)
games = GameService()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from geoquiz.main import main
    flask_app.register_blueprint(main)

    from geoquiz.broadcast import SocketIOPublisher
    from geoquiz.services.games.cities import load_cities, pick_random_cities
    from geoquiz.services.games.geocoding import NominatimGeocoder
    from geoquiz.services.games.scheduler import BackgroundScheduler

    cities_path = flask_app.config.get('CITIES_PATH')
    cities = []
    if cities_path:
        try:
            cities = load_cities(cities_path)
        except (OSError, ValueError) as exc:
            flask_app.logger.warning(f"[cities] pool not loaded from {cities_path}: {exc}")
        else:
            flask_app.logger.info(f"[cities] loaded {len(cities)} cities from {cities_path}")

    games.init_app(
        flask_app,
        publisher=SocketIOPublisher(socketio),
        scheduler=BackgroundScheduler(
            socketio, flask_app.logger, heartbeat_sec=int(flask_app.config.get('TIMER_HEARTBEAT_SEC', 0))
        ),
        geocoder=NominatimGeocoder(
            flask_app.config['GEOCODER_URL'],
            flask_app.config['GEOCODER_USER_AGENT'],
            timeout=float(flask_app.config.get('GEOCODER_TIMEOUT_SEC', 5)),
        ),
        cities=cities,
    )

    # Register Socket.IO event handlers
    # Importing here ensures the handlers bind to the initialized socketio instance
    from geoquiz.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('cities-check')
    @click.option('--min-population', type=int, default=None, help='Eligibility threshold for random rounds.')
    def cities_check_command(min_population):
        """Reports the bundled city pool by region and draws a sample random game."""
        threshold = games.min_city_population if min_population is None else min_population
        counts = {}
        for city in games.cities:
            if city.population >= threshold:
                counts[city.region.value] = counts.get(city.region.value, 0) + 1
        click.echo(f'{len(games.cities)} cities loaded, {sum(counts.values())} eligible (population >= {threshold})')
        for region in sorted(counts):
            click.echo(f'  {region}: {counts[region]}')
        sample = pick_random_cities(games.cities, min_population=threshold)
        click.echo('Sample draw: ' + ', '.join(city.name for city in sample))

    flask_app.cli.add_command(cities_check_command)

    return flask_app
