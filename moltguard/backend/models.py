"""Model presence on the backend: list, check and pull.

Used by ``GET /v1/models`` and by the startup provisioning task that makes
sure the configured guard model is available in remote mode.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from moltguard.backend.client import send_to_backend
from moltguard.constants import MODEL_PULL_TIMEOUT_S
from moltguard.errors import BackendError, DecodeFailure, GatewayError
from moltguard.models.api import BackendTagsResponse
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TAG = "latest"


class BackendModels:
    def __init__(self, http_client: httpx.AsyncClient, base_url: str) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def list_models(self) -> list[str]:
        """Names of every model installed on the backend.

        Raises:
            BackendError:     non-success from ``/api/tags``.
            DecodeFailure:    ``/api/tags`` body is not the expected shape.
            TransportFailure: backend unreachable.
        """
        response = await send_to_backend(
            self.http_client, "GET", f"{self.base_url}/api/tags"
        )
        if not response.is_success:
            raise BackendError(response.status_code)
        try:
            tags = BackendTagsResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeFailure(str(exc), side="backend") from exc
        return [tag.name for tag in tags.models]

    async def check_model_exists(self, name: str) -> bool:
        """True if ``name`` is installed (an untagged name also matches ``:latest``)."""
        installed = set(await self.list_models())
        if name in installed:
            return True
        return ":" not in name and f"{name}:{DEFAULT_TAG}" in installed

    async def pull_model(self, name: str) -> None:
        """Ask the backend to download ``name``; returns once the pull completes."""
        logger.info("model_pull_started", model=name)
        response = await send_to_backend(
            self.http_client,
            "POST",
            f"{self.base_url}/api/pull",
            json={"model": name, "stream": False},
            timeout=MODEL_PULL_TIMEOUT_S,
        )
        if not response.is_success:
            raise BackendError(response.status_code, context="Model pull")
        logger.info("model_pull_completed", model=name)

    async def ensure_model_exists(self, name: str) -> bool:
        """Check-then-pull. Logs the outcome instead of raising.

        Returns True when the model is available afterwards.
        """
        try:
            if await self.check_model_exists(name):
                logger.info("model_present", model=name)
                return True
            logger.warning("model_missing", model=name)
            await self.pull_model(name)
            return True
        except GatewayError as exc:
            logger.error(
                "model_provisioning_failed",
                model=name,
                error_code=exc.code,
                error=exc.message,
            )
            return False
