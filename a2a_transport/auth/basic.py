"""HTTP Basic and static bearer authentication."""

import base64
from typing import Any, Dict

from ..errors import ConfigurationError
from .base import AuthStrategy, mask_secret


class BasicAuth(AuthStrategy):

    name = "basic"

    def __init__(self, username: str, password: str):
        if not username:
            raise ConfigurationError("Basic auth requires a username")
        self.username = username
        self.password = password or ""

    async def apply_to_request(self, request) -> None:
        raw = f"{self.username}:{self.password}".encode("utf-8")
        request.headers["Authorization"] = f"Basic {base64.b64encode(raw).decode('ascii')}"

    def describe(self) -> Dict[str, Any]:
        return {"type": self.name, "username": self.username}


class BearerTokenAuth(AuthStrategy):
    """Opaque bearer token that the client cannot renew."""

    name = "bearer"

    def __init__(self, token: str):
        if not token:
            raise ConfigurationError("Bearer auth requires a token")
        self.token = token

    async def apply_to_request(self, request) -> None:
        request.headers["Authorization"] = f"Bearer {self.token}"

    def describe(self) -> Dict[str, Any]:
        return {"type": self.name, "token": mask_secret(self.token)}
