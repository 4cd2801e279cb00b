"""Shared constants for Molt-Guard.

Sentinels, defaults and pool sizing used across modules are defined here.
No magic numbers in other modules — import from here.
"""

# ─── Redaction sentinels ─────────────────────────────────────────────────────

SECRET_SENTINEL: str = "[SECRET_DETECTED]"
PII_SENTINEL: str = "[PII_REDACTED]"

# ─── Security alert (in-band BLOCK reply) ────────────────────────────────────

SHIELD_PREFIX: str = "🛡️ Security Alert:"
BLOCK_APOLOGY: str = (
    "I'm sorry, but I can't process that request as it appears to contain "
    "patterns associated with prompt injection."
)

# Headers set by the gateway on its own (non-relayed) responses
BLOCK_HEADER: str = "X-MoltGuard-Block"
REQUEST_ID_HEADER: str = "X-MoltGuard-Request-ID"

# ─── Backend defaults ─────────────────────────────────────────────────────────

DEFAULT_BACKEND_URL: str = "http://localhost:11434"
DEFAULT_GUARD_MODEL: str = "granite3-guardian"

# Client-wide send timeout (seconds). Local models can be slow to load on the
# first request, so this is well above what a hosted API would need.
DEFAULT_BACKEND_TIMEOUT_S: float = 60.0

# Seconds advertised in Retry-After while a guard model is still being pulled
CLASSIFIER_RETRY_AFTER_S: int = 30

# ─── Outbound connection pool ─────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# ─── Gateway binding defaults ─────────────────────────────────────────────────

DEFAULT_PROXY_HOST: str = "127.0.0.1"
DEFAULT_PROXY_PORT: int = 3000

# ─── OpenAI surface ───────────────────────────────────────────────────────────

MODEL_OWNER: str = "ollama"

# Guard model downloads are large; a non-streaming pull only answers when done
MODEL_PULL_TIMEOUT_S: float = 1800.0
