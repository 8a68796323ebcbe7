"""
Token identity: JWT issuance and handshake credential resolution.

A connection with no credential is admitted as anonymous; a connection whose
credential is present but cannot be verified is refused.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from jose import JWTError, jwt

from roomchat.config import settings
from roomchat.errors import AuthenticationError


@dataclass(frozen=True)
class Identity:
    user_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


ANONYMOUS = Identity()


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    """Create a signed JWT with issued-at and expiry claims."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"iat": now, "exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def credential_from_handshake(
    headers: Mapping[str, str], query_params: Mapping[str, str]
) -> Optional[str]:
    """
    Pull the bearer token out of the handshake.

    The ``Authorization`` header wins over the ``token`` query parameter.
    Returns None when no credential was presented at all.
    """
    header = headers.get("authorization")
    if header is None:
        return query_params.get("token") or None

    parts = header.split()
    if not parts:
        return None
    if parts[0].lower() != "bearer" or len(parts) > 2:
        raise AuthenticationError("Malformed authorization header")
    if len(parts) == 1:
        return None
    return parts[1]


class IdentityResolver:
    """Verifies access tokens against the configured secret and algorithm."""

    def __init__(self, secret_key: str, algorithm: str):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def resolve(self, credential: Optional[str]) -> Identity:
        if not credential:
            return ANONYMOUS
        try:
            payload = jwt.decode(credential, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthenticationError() from e

        # Tokens carry the user in "sub", or in "id" when minted as {id, role}.
        user_id = payload.get("sub") or payload.get("id")
        if not user_id:
            raise AuthenticationError()
        role = payload.get("role")
        return Identity(user_id=str(user_id), role=str(role) if role is not None else None)
