"""Outbound redaction pipeline.

``RedactionPipeline.redact()`` runs an ordered list of stages over a piece of
text. Each stage replaces every non-overlapping match of each of its rules with
the rule's sentinel. The default pipeline is secrets first, then PII.

Guarantees:
  - Pure and total: every match is replaced, nothing else is touched.
  - NEVER raises: a rule that fails is logged and skipped, the rest still run.
  - Idempotent: sentinels contain no text any rule matches, so
    ``redact(redact(t)) == redact(t)``.

New rule types are added by appending a ``RedactionRule`` to a stage (or a new
stage to the pipeline) — call sites stay unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from moltguard.scanner.definitions import PII_RULES, SECRET_RULES, RedactionRule
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RedactionStage:
    """A named group of rules applied together (e.g. ``secrets``)."""

    name: str
    rules: tuple[RedactionRule, ...]

    def apply(self, text: str) -> str:
        for rule in self.rules:
            try:
                text = rule.pattern.sub(rule.replacement, text)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "redaction_rule_failed",
                    stage=self.name,
                    rule=rule.slug,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
        return text


class RedactionPipeline:
    """Ordered chain of redaction stages."""

    def __init__(self, stages: Sequence[RedactionStage]) -> None:
        self._stages: tuple[RedactionStage, ...] = tuple(stages)

    @classmethod
    def default(cls) -> "RedactionPipeline":
        """Secrets, then PII."""
        return cls(
            [
                RedactionStage("secrets", SECRET_RULES),
                RedactionStage("pii", PII_RULES),
            ]
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    def redact(self, text: str) -> str:
        for stage in self._stages:
            text = stage.apply(text)
        return text

    def redact_value(self, value: Any) -> Any:
        """Redact every string inside a decoded JSON value; keys are untouched."""
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, list):
            return [self.redact_value(item) for item in value]
        if isinstance(value, dict):
            return {key: self.redact_value(item) for key, item in value.items()}
        return value
