"""Policy data contracts shared by the policy engine, interceptor and config.

  - ValidationMode  — local heuristic vs. remote classifier
  - Sensitivity     — LOW < MEDIUM < HIGH (strictness, default MEDIUM)
  - Action          — ALLOW / BLOCK
  - PolicyDecision  — immutable ALLOW or BLOCK(reason)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ValidationMode(str, Enum):
    """Where the ALLOW/BLOCK decision is computed.

    LOCAL never performs network I/O. REMOTE asks a guard model hosted on the
    backend to classify the prompt.
    """

    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def parse(cls, value: str) -> "ValidationMode":
        """Case-insensitive lookup. Raises ValueError on unknown names."""
        return cls(value.strip().lower())


class Sensitivity(str, Enum):
    """Strictness tier. Higher tiers block a superset of lower tiers."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str) -> "Sensitivity":
        """Case-insensitive lookup. Raises ValueError on unknown names."""
        return cls(value.strip().lower())

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Action(str, Enum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of one policy evaluation.

    ``reason`` is always set on BLOCK and is surfaced to the caller verbatim.
    """

    action: Action
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(action=Action.ALLOW)

    @classmethod
    def block(cls, reason: str) -> "PolicyDecision":
        return cls(action=Action.BLOCK, reason=reason)

    @property
    def blocked(self) -> bool:
        return self.action == Action.BLOCK
