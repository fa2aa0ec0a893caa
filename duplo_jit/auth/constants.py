"""Constants for interactive authentication."""

from __future__ import annotations

# Callback listener: loopback only, OS-assigned port by default.
CALLBACK_HOST = "127.0.0.1"
DEFAULT_CALLBACK_PORT = 0

CALLBACK_TOKEN_PATH = "/"
CALLBACK_OTP_PATH = "/v2/callbackWithOtp"
LOGIN_PATH = "/app/user/verify-token"

AUTH_TIMEOUT_ENV = "DUPLO_JIT_AUTH_TIMEOUT"
DEFAULT_AUTH_TIMEOUT_SECONDS = 180.0

CORS_ALLOW_HEADERS = "X-Requested-With, Accept, Content-Type"

# Replies to the posting script, written as JSON strings.
STATUS_DONE = '"done"\n'
STATUS_FAILED = '"failed"\n'

# Error messages
ERROR_AUTH_TIMEOUT = "timed out waiting for the interactive browser session"
ERROR_AUTH_CANCELED = "interactive login was canceled"
ERROR_UNAUTHORIZED_ORIGIN = "unauthorized origin"
ERROR_MISSING_TOKEN = "missing token"
ERROR_MALFORMED = "cannot unmarshal callback body from JSON"
ERROR_BROWSER = "failed to open interactive browser session"
ERROR_MFA_DISABLED = "server requires MFA but --interactive mode is disabled"
ERROR_NOT_INTERACTIVE = "--token not specified and --interactive mode is disabled"
ERROR_FEATURES = "authentication failure: failed to collect system features"
