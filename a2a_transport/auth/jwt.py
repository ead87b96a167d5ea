"""JWT bearer authentication.

Either a static token supplied by the caller, or a token signed locally from
``payload`` with ``secret``. Signed tokens get ``iat``/``exp`` claims when
``expires_in`` is set and are re-signed shortly before they expire.
"""

import time
from typing import Any, Callable, Dict, Optional

from jose import JWTError, jwt

from ..errors import AuthenticationError, ConfigurationError
from ..types import Credential
from ..utils.config.constants import TOKEN_EXPIRY_BUFFER_SECONDS
from .base import AuthStrategy, SingleFlight, logger

SUPPORTED_ALGORITHMS = (
    "HS256", "HS384", "HS512",
    "RS256", "RS384", "RS512",
    "ES256", "ES384", "ES512",
)


class JWTAuth(AuthStrategy):

    name = "jwt"

    def __init__(self, token: Optional[str] = None, secret: Optional[str] = None,
                 algorithm: str = "HS256", payload: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, Any]] = None, expires_in: Optional[int] = None,
                 verification_key: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.static_token = token
        self.secret = secret
        self.algorithm = algorithm
        self.payload = dict(payload or {})
        self.headers = dict(headers or {})
        self.expires_in = expires_in
        self.verification_key = verification_key
        self._clock = clock
        self._validate_configuration()

        self._cache = SingleFlight(self._generate, buffer_seconds=TOKEN_EXPIRY_BUFFER_SECONDS,
                                   clock=clock)

    def _validate_configuration(self):
        if self.static_token is None and self.secret is None:
            raise ConfigurationError("Either token or secret must be provided")
        if self.static_token is None and not self.payload:
            raise ConfigurationError("Payload is required for dynamic token generation")
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported JWT algorithm: {self.algorithm}")

    @property
    def is_static(self) -> bool:
        return self.static_token is not None

    @property
    def supports_refresh(self) -> bool:
        return not self.is_static

    async def jwt_token(self) -> str:
        if self.is_static:
            return self.static_token
        credential = await self._cache.get()
        return credential.value

    async def apply_to_request(self, request) -> None:
        request.headers["Authorization"] = f"Bearer {await self.jwt_token()}"

    async def refresh(self) -> None:
        await self.regenerate_token()

    async def regenerate_token(self) -> str:
        if self.is_static:
            raise AuthenticationError("Cannot regenerate a static JWT")
        credential = await self._cache.refresh()
        return credential.value

    def token_expired(self, token: Optional[str] = None) -> bool:
        """Whether the current (or given) token is expired or about to be.

        Tokens that cannot be decoded count as expired.
        """
        if token is None and not self.is_static:
            return not self._cache.is_fresh()

        exp = self._read_exp(token or self.static_token)
        if exp is _UNDECODABLE:
            return True
        if exp is None:
            return False
        return self._clock() >= exp - TOKEN_EXPIRY_BUFFER_SECONDS

    @property
    def expires_at(self) -> Optional[float]:
        if self.is_static:
            exp = self._read_exp(self.static_token)
            return None if exp is _UNDECODABLE else exp
        credential = self._cache.credential
        return credential.expires_at if credential else None

    def is_valid(self) -> bool:
        return not self.token_expired()

    def validate_token(self, token: str, verify_signature: bool = True) -> Dict[str, Any]:
        """Decode a token and return its claims."""
        try:
            if verify_signature:
                key = self.verification_key or self.secret
                if key is None:
                    raise AuthenticationError("No key available to verify the JWT signature")
                return jwt.decode(token, key, algorithms=[self.algorithm],
                                  options={"verify_aud": False})
            return jwt.get_unverified_claims(token)
        except JWTError as e:
            raise AuthenticationError(f"JWT validation failed: {e}") from e

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "algorithm": self.algorithm,
            "static": self.is_static,
            "expires_in": self.expires_in,
        }

    def _read_exp(self, token: str):
        try:
            claims = self.validate_token(token, verify_signature=False)
        except AuthenticationError:
            return _UNDECODABLE
        exp = claims.get("exp")
        return float(exp) if isinstance(exp, (int, float)) else None

    async def _generate(self) -> Credential:
        claims = dict(self.payload)
        expires_at = None
        if self.expires_in:
            now = int(self._clock())
            claims["iat"] = now
            claims["exp"] = now + self.expires_in
            expires_at = float(now + self.expires_in)

        try:
            token = jwt.encode(claims, self.secret, algorithm=self.algorithm,
                               headers=self.headers or None)
        except JWTError as e:
            raise AuthenticationError(f"JWT generation failed: {e}") from e

        logger.debug("jwt_generated", algorithm=self.algorithm, expires_at=expires_at)
        return Credential(value=token, expires_at=expires_at)


_UNDECODABLE = object()
