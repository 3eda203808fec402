"""Configuration constants for the relay hub."""

# Relay server settings
RELAY_SERVER_HOST = "0.0.0.0"  # Listen address for relay server
RELAY_SERVER_PORT = 8080  # WebSocket port
RELAY_OPERATOR_SECRET = "admin123"  # Shared secret operators submit in their first frame
RELAY_IDENTIFICATION_TIMEOUT = 10  # Seconds a new connection has to send its first frame
RELAY_HEARTBEAT_INTERVAL = 30  # Seconds between liveness ping cycles
RELAY_CLOSE_TIMEOUT = 2  # Seconds to wait for a closing handshake
RELAY_SEND_TIMEOUT = 5  # Seconds a single send or ping may take before the peer is treated as dead
RELAY_BIND_RETRY_DELAY = 1  # Seconds before the single bind retry
RELAY_MAX_MESSAGE_SIZE = 16 * 1024 * 1024  # Maximum frame size (16MB, fits encoded images)

# Operator client settings
OPERATOR_SERVER_URL = "ws://localhost:8080"
OPERATOR_RECONNECT_DELAY = 3  # Fixed seconds between reconnect attempts
OPERATOR_MAX_RECONNECT_ATTEMPTS = 5  # Attempts before a manual reconnect is required
OPERATOR_AUTH_TIMEOUT = 10  # Seconds to wait for the operator welcome
OPERATOR_DEFAULT_AGENT_PATH = "/storage/emulated/0"  # Prompt path before an agent reports one

# Status HTTP endpoint
STATUS_HTTP_HOST = "0.0.0.0"
STATUS_HTTP_PORT = 8081

# Image persistence
IMAGE_OUTPUT_DIR = "./wallpapers"

# Logging
LOG_FILE = "relayhub.log"
