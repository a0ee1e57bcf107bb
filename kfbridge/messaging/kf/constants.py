"""WeChat KF API constants."""

DEFAULT_API_BASE_URL = "https://qyapi.weixin.qq.com/cgi-bin"

# Timeouts (seconds)
TOKEN_FETCH_TIMEOUT = 15
API_POST_TIMEOUT = 30

# errcode values that indicate an expired or invalid access token
TOKEN_EXPIRED_CODES = frozenset({40014, 42001, 40001})

# Refresh cached tokens this many seconds before the platform expiry
TOKEN_REFRESH_MARGIN = 5 * 60

# sync_msg page size ceiling accepted by the platform
SYNC_PAGE_LIMIT = 1000

# Message origin codes
ORIGIN_CUSTOMER = 3
ORIGIN_SYSTEM = 4
ORIGIN_SERVICER = 5

MSGTYPE_EVENT = "event"
