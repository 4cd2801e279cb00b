"""Console entry point: serve the gateway with uvicorn.

Host and port come from the loaded config (127.0.0.1:3000 unless configured).
Concurrency is capped at the size of the backend connection pool so a request
that is accepted always gets a pooled backend slot; excess connections are
answered 503 by uvicorn.

    python -m moltguard.run
    moltguard
"""

from __future__ import annotations

import uvicorn

from moltguard.config import load_config
from moltguard.constants import POOL_MAX_CONNECTIONS

# ─── Uvicorn hardened defaults ────────────────────────────────────────────────

UVICORN_LIMIT_CONCURRENCY: int = POOL_MAX_CONNECTIONS

# TCP accept queue
UVICORN_BACKLOG: int = 50

# Idle keep-alive seconds
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the Molt-Guard gateway with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "moltguard.main:app",
        host=config.proxy.host,
        port=config.proxy.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
