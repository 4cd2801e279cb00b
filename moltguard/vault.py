"""Secret-store lookup of the backend URL.

When ``vault.address`` and ``vault.token`` are both configured, startup reads
``GET {address}/v1/{path}`` (KV v2 layout) with the ``X-Vault-Token`` header
and takes ``data.data.ollama_url`` as the backend URL. Any failure keeps the
configured URL; the gateway still starts.
"""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from moltguard.backend.client import send_to_backend
from moltguard.config import Config, VaultConfig
from moltguard.errors import BackendError, DecodeFailure, GatewayError
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)

VAULT_TOKEN_HEADER = "X-Vault-Token"


class _SecretPayload(BaseModel):
    ollama_url: str


class _SecretData(BaseModel):
    data: _SecretPayload


class _SecretResponse(BaseModel):
    data: _SecretData


class VaultClient:
    def __init__(self, http_client: httpx.AsyncClient, settings: VaultConfig) -> None:
        self.http_client = http_client
        self.settings = settings

    async def fetch_backend_url(self) -> str:
        """Read the backend URL from the configured secret path.

        Raises:
            BackendError:     the secret store answered non-2xx.
            DecodeFailure:    the secret is missing ``ollama_url``.
            TransportFailure: the secret store is unreachable.
        """
        address = (self.settings.address or "").rstrip("/")
        path = self.settings.path.lstrip("/")
        response = await send_to_backend(
            self.http_client,
            "GET",
            f"{address}/v1/{path}",
            headers={VAULT_TOKEN_HEADER: self.settings.token or ""},
        )
        if not response.is_success:
            raise BackendError(response.status_code, context="Vault API")
        try:
            secret = _SecretResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeFailure(str(exc), side="backend") from exc
        return secret.data.data.ollama_url


async def resolve_backend_url(config: Config, http_client: httpx.AsyncClient) -> Config:
    """Return ``config`` with the backend URL taken from the secret store, if any."""
    if not config.vault.enabled:
        return config

    url: Optional[str] = None
    try:
        url = await VaultClient(http_client, config.vault).fetch_backend_url()
    except GatewayError as exc:
        logger.warning(
            "vault_lookup_failed",
            vault_path=config.vault.path,
            error_code=exc.code,
            error=exc.message,
        )

    if not url:
        return config
    logger.info("backend_url_from_vault", vault_path=config.vault.path)
    return config.with_backend_url(url)
