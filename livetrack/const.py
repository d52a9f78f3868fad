DOMAIN = "livetrack"
VERSION = "0.1.0"

# Backend endpoints (overridable through config)
DEFAULT_API_URL = "http://localhost:3001/api"
DEFAULT_SOCKET_URL = "ws://localhost:3001"
DIRECTIONS_API_URL = "https://api.mapbox.com/directions/v5/mapbox/driving/"

# Realtime event names
EVENT_LOCATION_UPDATE = "location-update"
EVENT_ORDER_STATUS_UPDATE = "order-status-update"
EVENT_JOIN_TRACKING = "join-tracking"
EVENT_LEAVE_TRACKING = "leave-tracking"

# Continuous watch options
WATCH_HIGH_ACCURACY = True
WATCH_TIMEOUT_MS = 10000
WATCH_MAX_SAMPLE_AGE_MS = 3000       # samples older than 3 s are not reused

# One-shot position request options
ONE_SHOT_TIMEOUT_MS = 10000
ONE_SHOT_MAX_SAMPLE_AGE_MS = 60000

# HTTP request retry (seconds, multiplied by attempt number)
REQUEST_TIMEOUT = 5
REQUEST_ATTEMPTS = 3

# Routing provider
ROUTE_REQUEST_TIMEOUT = 15
ROUTE_REQUEST_DELAY = 0.2            # minimum gap between route queries for one delivery
MIN_ROUTE_UPDATE_DISTANCE = 0.0001   # ~11 m as a coordinate delta in decimal degrees

# Simulated positioning (demo mode)
SIMULATION_INTERVAL = 3.0            # seconds between simulated samples
SIMULATION_JITTER = 0.0005           # max per-axis movement in degrees per step
SIMULATION_ACCURACY = 10.0           # reported accuracy in metres
DEFAULT_LATITUDE = 37.7749           # San Francisco
DEFAULT_LONGITUDE = -122.4194

# Config keys
CONF_API_URL = "api_url"
CONF_SOCKET_URL = "socket_url"
CONF_MAPBOX_TOKEN = "mapbox_token"
CONF_DATA_SOURCE = "data_source"
CONF_REQUEST_TIMEOUT = "request_timeout"
CONF_REQUEST_ATTEMPTS = "request_attempts"
CONF_MIN_ROUTE_UPDATE_DISTANCE = "min_route_update_distance"

DATA_SOURCE_MOCK = "mock"
DATA_SOURCE_BACKEND = "backend"
