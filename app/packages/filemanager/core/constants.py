"""常量定义：集中维护状态码、节点类型与运行模式等取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

ACCESS_TOKEN_TYPE = "bearer"

# 节点类型
ITEM_TYPE_FOLDER = "folder"
ITEM_TYPE_FILE = "file"

# 运行模式
MODE_DATABASE = "database"
MODE_STORAGE = "storage"
SUPPORTED_MODES = (MODE_DATABASE, MODE_STORAGE)

# 直链策略
URL_STRATEGY_AUTO = "auto"
URL_STRATEGY_SIGNED_ROUTE = "signed_route"
URL_STRATEGY_DIRECT = "direct"
URL_STRATEGY_TEMPORARY = "temporary_url"
URL_STRATEGY_PUBLIC = "public_url"

STREAM_SIGNATURE_PURPOSE = "file_stream"
STREAM_ROUTE_STREAM = "stream"
STREAM_ROUTE_DOWNLOAD = "download"

CACHE_CONTROL_PRIVATE = "private, max-age=3600"
DEFAULT_MIME_TYPE = "application/octet-stream"

ROOT_BREADCRUMB_NAME = "Root"
MAX_TREE_DEPTH = 50
MAX_FILENAME_BYTES = 255
