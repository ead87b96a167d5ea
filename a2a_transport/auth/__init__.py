"""Authentication strategies and their factories."""

from typing import Any, Dict, Optional

from ..errors import ConfigurationError
from .api_key import ApiKeyAuth
from .base import AuthStrategy, SingleFlight, mask_secret
from .basic import BasicAuth, BearerTokenAuth
from .interceptor import AuthInterceptor
from .jwt import JWTAuth
from .oauth2 import OAuth2ClientCredentials


def from_config(config: Dict[str, Any]) -> AuthStrategy:
    """Build a strategy from a mapping with a ``type`` key.

    Types: oauth2, jwt, api_key, basic, bearer.
    """
    kind = config.get("type")
    if kind == "oauth2":
        return OAuth2ClientCredentials(
            client_id=config.get("client_id"),
            client_secret=config.get("client_secret"),
            token_url=config.get("token_url"),
            scope=config.get("scope"),
        )
    if kind == "jwt":
        return JWTAuth(
            token=config.get("token"),
            secret=config.get("secret"),
            algorithm=config.get("algorithm") or "HS256",
            payload=config.get("payload"),
            headers=config.get("headers"),
            expires_in=config.get("expires_in"),
            verification_key=config.get("verification_key"),
        )
    if kind == "api_key":
        return ApiKeyAuth(
            key=config.get("key"),
            name=config.get("name") or "X-API-Key",
            location=config.get("location") or "header",
        )
    if kind == "basic":
        return BasicAuth(config.get("username"), config.get("password"))
    if kind == "bearer":
        return BearerTokenAuth(config.get("token"))
    raise ConfigurationError(f"Unknown authentication type: {kind}")


def from_security_scheme(scheme: Dict[str, Any], credentials: Dict[str, Any]) -> AuthStrategy:
    """Build a strategy for one of an agent card's ``securitySchemes``."""
    kind = scheme.get("type")
    if kind == "oauth2":
        token_url = scheme.get("tokenUrl") or _client_credentials_token_url(scheme)
        if not token_url:
            raise ConfigurationError("OAuth2 security scheme has no token URL")
        return OAuth2ClientCredentials(
            client_id=credentials.get("client_id"),
            client_secret=credentials.get("client_secret"),
            token_url=token_url,
            scope=credentials.get("scope"),
        )
    if kind == "http":
        http_scheme = (scheme.get("scheme") or "").lower()
        if http_scheme == "bearer":
            return JWTAuth(token=credentials.get("token"))
        if http_scheme == "basic":
            return BasicAuth(credentials.get("username"), credentials.get("password"))
        raise ConfigurationError(f"Unsupported HTTP scheme: {scheme.get('scheme')}")
    if kind == "apiKey":
        return ApiKeyAuth.from_security_scheme(scheme, credentials.get("key"))
    raise ConfigurationError(f"Unsupported security scheme type: {kind}")


def _client_credentials_token_url(scheme: Dict[str, Any]) -> Optional[str]:
    flows = scheme.get("flows") or {}
    flow = flows.get("clientCredentials") or {}
    return flow.get("tokenUrl")


__all__ = [
    "AuthStrategy",
    "SingleFlight",
    "OAuth2ClientCredentials",
    "JWTAuth",
    "ApiKeyAuth",
    "BasicAuth",
    "BearerTokenAuth",
    "AuthInterceptor",
    "from_config",
    "from_security_scheme",
    "mask_secret",
]
