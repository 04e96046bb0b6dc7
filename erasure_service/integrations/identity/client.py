"""Async httpx client for the identity provider's user API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from erasure_service.config import settings
from erasure_service.errors import AccountNotFoundError

logger = logging.getLogger(__name__)


class HttpIdentityProvider:
    """Thin async wrapper around the identity provider's user endpoints.

    Endpoints: GET / DELETE {base_url}/users/{subject_id}
    Auth: Bearer token
    A 404 means the account does not exist; any other HTTP error raises
    httpx.HTTPStatusError so the calling step can retry it.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url if base_url is not None else settings.identity.identity_api_url).rstrip("/")
        self._token = token if token is not None else settings.identity.identity_api_token
        self._timeout = httpx.Timeout(
            timeout if timeout is not None else settings.identity.identity_timeout,
            connect=5.0,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    def _user_url(self, subject_id: str) -> str:
        # Path separators and dot segments in the id stay inside one segment
        segment = quote(subject_id, safe="")
        if segment in {"", ".", ".."}:
            msg = f"Subject id cannot be used in a URL path: {subject_id!r}"
            raise ValueError(msg)
        return f"{self._base_url}/users/{segment}"

    async def get_account(self, subject_id: str) -> dict[str, Any] | None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._user_url(subject_id), headers=self._headers)

        if response.status_code == 404:
            logger.debug("Identity provider: subject %s not found", subject_id)
            return None
        response.raise_for_status()
        payload: dict[str, Any] = response.json()
        return payload

    async def export_profile(self, subject_id: str) -> dict[str, Any] | None:
        return await self.get_account(subject_id)

    async def delete_account(self, subject_id: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.delete(self._user_url(subject_id), headers=self._headers)

        if response.status_code == 404:
            raise AccountNotFoundError(f"Subject {subject_id} not found at identity provider")
        response.raise_for_status()
        logger.info("Identity provider account deleted: %s", subject_id)
