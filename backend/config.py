import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Session defaults (clamped to the allowed ranges on creation)
    DEFAULT_ROUND_TIME_SEC = int(os.environ.get('DEFAULT_ROUND_TIME_SEC', '20'))
    DEFAULT_FREE_RADIUS_KM = float(os.environ.get('DEFAULT_FREE_RADIUS_KM', '0'))
    DEFAULT_PENALTY_KM = float(os.environ.get('DEFAULT_PENALTY_KM', '20000'))
    # How long a disconnected host may reclaim the session (seconds)
    HOST_GRACE_SEC = int(os.environ.get('HOST_GRACE_SEC', '180'))
    # Finished sessions stay addressable this long before being dropped. 0 drops immediately.
    FINISHED_RETENTION_SEC = int(os.environ.get('FINISHED_RETENTION_SEC', '600'))
    # Random game city pool
    CITIES_PATH = os.environ.get('CITIES_PATH') or os.path.join(BASE_DIR, 'data', 'cities.json')
    MIN_CITY_POPULATION = int(os.environ.get('MIN_CITY_POPULATION', '500000'))
    # Geocoding of host-typed city names
    GEOCODER_URL = os.environ.get('GEOCODER_URL', 'https://nominatim.openstreetmap.org/search')
    GEOCODER_USER_AGENT = os.environ.get('GEOCODER_USER_AGENT', 'geoquiz-server/0.1')
    GEOCODER_TIMEOUT_SEC = float(os.environ.get('GEOCODER_TIMEOUT_SEC', '5'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
