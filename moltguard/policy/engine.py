"""Policy engine — decides ALLOW / BLOCK for a candidate prompt.

Two strategies, chosen once when the engine is built from configuration:

  LocalHeuristicStrategy
      Case-insensitive substring match against the sensitivity tier's
      blocklist (``scanner.definitions.LOCAL_BLOCKLIST``). This is a string
      heuristic, not a learned model. No network I/O.

  RemoteClassifierStrategy
      Frames the prompt for the configured guard model, asks the backend's
      ``/api/generate`` for a non-streaming completion and reads the free-text
      reply with that guard model's grammar (``policy.guard_models``).

Failure policy (remote): fail-closed. A classifier that cannot answer raises a
``GatewayError``; the request is never forwarded and the caller sees why:
  backend 404          → ClassifierNotProvisioned (model still being pulled)
  other non-2xx        → BackendError
  network failure      → TransportFailure
  undecodable reply    → DecodeFailure(side="backend")
"""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from moltguard.backend.client import send_to_backend
from moltguard.errors import BackendError, ClassifierNotProvisioned, DecodeFailure
from moltguard.models.api import BackendGenerateResponse
from moltguard.models.policy import PolicyDecision, Sensitivity, ValidationMode
from moltguard.policy.guard_models import GuardModel, select_guard_model
from moltguard.scanner.definitions import LOCAL_BLOCKLIST
from moltguard.utils.logger import get_logger, log_duration

logger = get_logger(__name__)


class PolicyStrategy:
    """One way of turning a prompt into a ``PolicyDecision``."""

    mode: ValidationMode

    async def decide(self, prompt: str) -> PolicyDecision:
        raise NotImplementedError


class LocalHeuristicStrategy(PolicyStrategy):
    """Substring blocklist; a higher tier's list contains every lower tier's."""

    mode = ValidationMode.LOCAL

    def __init__(self, sensitivity: Sensitivity = Sensitivity.MEDIUM) -> None:
        self.sensitivity = sensitivity
        self.phrases: tuple[str, ...] = LOCAL_BLOCKLIST[sensitivity]

    def match(self, prompt: str) -> Optional[str]:
        """Return the first blocklisted phrase found in ``prompt``, if any."""
        lowered = prompt.lower()
        for phrase in self.phrases:
            if phrase in lowered:
                return phrase
        return None

    async def decide(self, prompt: str) -> PolicyDecision:
        if self.match(prompt) is None:
            return PolicyDecision.allow()
        return PolicyDecision.block(
            f"Malicious prompt detected (Local Check, Sensitivity: {self.sensitivity.label})"
        )


class RemoteClassifierStrategy(PolicyStrategy):
    """Guard model hosted on the backend classifies the prompt."""

    mode = ValidationMode.REMOTE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        model_name: str,
        sensitivity: Sensitivity = Sensitivity.MEDIUM,
        guard: Optional[GuardModel] = None,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.sensitivity = sensitivity
        self.guard = guard or select_guard_model(model_name)

    async def classify(self, prompt: str) -> str:
        """Return the guard model's raw reply text for ``prompt``."""
        payload = {
            "model": self.model_name,
            "prompt": self.guard.build_prompt(prompt),
            "stream": False,
        }
        with log_duration("guard_classification", logger, guard_model=self.model_name):
            response = await send_to_backend(
                self.http_client,
                "POST",
                f"{self.base_url}/api/generate",
                json=payload,
            )

        if response.status_code == 404:
            logger.warning("classifier_not_provisioned", guard_model=self.model_name)
            raise ClassifierNotProvisioned(self.model_name)
        if not response.is_success:
            logger.warning(
                "classifier_backend_error",
                guard_model=self.model_name,
                status_code=response.status_code,
            )
            raise BackendError(response.status_code, context="Guard model backend")

        try:
            body = BackendGenerateResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeFailure(str(exc), side="backend") from exc
        return body.response

    async def decide(self, prompt: str) -> PolicyDecision:
        reply = (await self.classify(prompt)).lower()
        if not self.guard.is_unsafe(reply, self.sensitivity):
            return PolicyDecision.allow()
        return PolicyDecision.block(
            f"Malicious prompt detected (Remote, Guard: {self.guard.label}, "
            f"Sensitivity: {self.sensitivity.label})"
        )


class PolicyEngine:
    """Single entry point for prompt policy: ``await engine.decide(prompt)``."""

    def __init__(self, strategy: PolicyStrategy) -> None:
        self.strategy = strategy

    @classmethod
    def local(cls, sensitivity: Sensitivity = Sensitivity.MEDIUM) -> "PolicyEngine":
        return cls(LocalHeuristicStrategy(sensitivity))

    @classmethod
    def remote(
        cls,
        http_client: httpx.AsyncClient,
        base_url: str,
        model_name: str,
        sensitivity: Sensitivity = Sensitivity.MEDIUM,
    ) -> "PolicyEngine":
        return cls(RemoteClassifierStrategy(http_client, base_url, model_name, sensitivity))

    @classmethod
    def from_settings(
        cls,
        *,
        mode: ValidationMode,
        sensitivity: Sensitivity,
        guard_model: str,
        base_url: str,
        http_client: httpx.AsyncClient,
    ) -> "PolicyEngine":
        if mode == ValidationMode.REMOTE:
            return cls.remote(http_client, base_url, guard_model, sensitivity)
        return cls.local(sensitivity)

    @property
    def mode(self) -> ValidationMode:
        return self.strategy.mode

    async def decide(self, prompt: str) -> PolicyDecision:
        decision = await self.strategy.decide(prompt)
        logger.info(
            "policy_decision",
            mode=self.mode.value,
            action=decision.action.value,
            reason=decision.reason,
        )
        return decision
