# Relay protocol constants (event types, field names, sentinels)

# Inbound event types (client -> relay)
T_JOIN = "join"
T_MESSAGE = "message"
T_FILE = "file"
T_DELETE = "delete"
T_PING = "ping"

INBOUND_TYPES = frozenset({T_JOIN, T_MESSAGE, T_FILE, T_DELETE, T_PING})

# Outbound event types (relay -> client)
O_MESSAGE = "message"
O_CLEAR = "clear"
O_ANONYMOUS = "anonymous"
O_CHARACTER_LIMIT = "characterLimit"
O_PATHS = "paths"

# Envelope keys
K_TYPE = "type"
K_DATA = "data"

# Inbound field names
F_PATH = "path"
F_USERNAME = "username"
F_TEXT = "text"
F_FILENAME = "filename"
F_FILE_TYPE = "fileType"
F_RESULT = "result"
F_INDEX = "index"

# Stored message kinds
MSG_TEXT = "text"
MSG_FILE = "file"

ANONYMOUS_USERNAME = "ANONYMOUS"
DEFAULT_USERNAME = "Unknown"

PATH_SEPARATOR = "/"

# Persisted state record
STATE_VERSION = 1

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_GOING_AWAY = 1001
