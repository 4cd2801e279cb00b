"""ULID generation for Molt-Guard.

ULIDs identify a single gateway request. The same value is:
  - bound into the structlog context as ``request_id``
  - the suffix of the ``chatcmpl-<ulid>`` id returned on the OpenAI surface
  - the ``X-MoltGuard-Request-ID`` value on synthesized security alerts

Uses the ``python-ulid`` library; do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Return a new 26-character Crockford Base32 ULID string."""
    return str(ULID())
