"""API key authentication in a header, query parameter or cookie."""

from typing import Any, Dict

from ..errors import ConfigurationError
from .base import AuthStrategy, mask_secret

VALID_LOCATIONS = ("header", "query", "cookie")
DEFAULT_KEY_NAME = "X-API-Key"


class ApiKeyAuth(AuthStrategy):

    name = "api_key"

    def __init__(self, key: str, name: str = DEFAULT_KEY_NAME, location: str = "header"):
        if not isinstance(key, str) or not key.strip():
            raise ConfigurationError("API key must be a non-empty string")
        if not name or not name.strip():
            raise ConfigurationError("API key name cannot be empty")
        location = (location or "header").lower()
        if location not in VALID_LOCATIONS:
            raise ConfigurationError(
                f"Invalid location '{location}'. Must be one of: {', '.join(VALID_LOCATIONS)}"
            )
        self.key = key
        self.key_name = name
        self.location = location

    @classmethod
    def from_security_scheme(cls, scheme: Dict[str, Any], key: str) -> "ApiKeyAuth":
        """Build from an agent card ``apiKey`` security scheme."""
        return cls(key=key, name=scheme.get("name") or DEFAULT_KEY_NAME,
                   location=scheme.get("in") or "header")

    async def apply_to_request(self, request) -> None:
        if self.location == "header":
            request.headers[self.key_name] = self.key
        elif self.location == "query":
            request.params[self.key_name] = self.key
        else:
            cookie = f"{self.key_name}={self.key}"
            existing = request.headers.get("Cookie")
            request.headers["Cookie"] = f"{existing}; {cookie}" if existing else cookie

    def masked_key(self) -> str:
        return mask_secret(self.key)

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "key": self.masked_key(),
            "name": self.key_name,
            "location": self.location,
        }

    def __repr__(self):
        return f"ApiKeyAuth(name={self.key_name}, location={self.location}, key={self.masked_key()})"
