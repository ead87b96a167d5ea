"""OAuth 2.0 client credentials grant."""

import asyncio
import json
import time
from typing import Any, Callable, Dict, Optional

import aiohttp

from ..errors import AuthenticationError
from ..types import Credential
from ..utils.config.constants import DEFAULT_OAUTH2_EXPIRES_IN, TOKEN_EXPIRY_BUFFER_SECONDS
from .base import AuthStrategy, SingleFlight, logger, mask_secret


class OAuth2ClientCredentials(AuthStrategy):
    """Fetches bearer tokens from ``token_url`` and caches them until shortly before expiry.

    Concurrent requests that find the token missing or stale share one
    token request.
    """

    name = "oauth2"
    supports_refresh = True

    def __init__(self, client_id: str, client_secret: str, token_url: str,
                 scope: Optional[str] = None, timeout: float = 30,
                 session: Optional[aiohttp.ClientSession] = None,
                 clock: Callable[[], float] = time.time):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.scope = scope
        self.timeout = timeout
        self._session = session
        self._clock = clock
        self._cache = SingleFlight(self._fetch_token, buffer_seconds=TOKEN_EXPIRY_BUFFER_SECONDS,
                                   clock=clock)
        self.token_requests = 0

    async def token(self) -> str:
        credential = await self._cache.get()
        return credential.value

    async def apply_to_request(self, request) -> None:
        request.headers["Authorization"] = f"Bearer {await self.token()}"

    async def refresh(self) -> None:
        await self._cache.refresh()

    def clear_token(self):
        self._cache.clear()

    @property
    def access_token(self) -> Optional[str]:
        credential = self._cache.credential
        return credential.value if credential else None

    @property
    def expires_at(self) -> Optional[float]:
        credential = self._cache.credential
        return credential.expires_at if credential else None

    def is_valid(self) -> bool:
        return self._cache.is_fresh()

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "client_id": self.client_id,
            "client_secret": mask_secret(self.client_secret),
            "token_url": self.token_url,
            "scope": self.scope,
        }

    async def _fetch_token(self) -> Credential:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            form["scope"] = self.scope

        self.token_requests += 1
        logger.info("oauth2_token_request", token_url=self.token_url, client_id=self.client_id)

        try:
            if self._session is not None:
                status, body = await self._post(self._session, form)
            else:
                async with aiohttp.ClientSession() as session:
                    status, body = await self._post(session, form)
        except aiohttp.ClientError as e:
            raise AuthenticationError(f"OAuth2 token request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise AuthenticationError("OAuth2 token request timed out") from e

        if not 200 <= status < 300:
            logger.warning("oauth2_token_request_failed", status=status)
            raise AuthenticationError(f"OAuth2 token request failed: {status} - {body}",
                                      status_code=status, response_body=body)

        try:
            token_data = json.loads(body)
        except ValueError as e:
            raise AuthenticationError("OAuth2 token response is not valid JSON",
                                      response_body=body) from e

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise AuthenticationError("OAuth2 response missing access_token", response_body=body)

        try:
            expires_in = int(token_data.get("expires_in") or DEFAULT_OAUTH2_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_OAUTH2_EXPIRES_IN

        logger.info("oauth2_token_acquired", expires_in=expires_in)
        return Credential(
            value=token_data["access_token"],
            expires_at=self._clock() + expires_in,
            metadata={"token_type": token_data.get("token_type", "Bearer")},
        )

    async def _post(self, session: aiohttp.ClientSession, form: Dict[str, str]):
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.post(self.token_url, data=form, timeout=timeout,
                                headers={"Accept": "application/json"}) as resp:
            return resp.status, await resp.text()
