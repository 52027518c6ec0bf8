"""JWT verification for bearer tokens issued by the external auth service.

All services share one JWT_SECRET (HS256). ``create_access_token`` exists for
local tooling and tests; production tokens come from the auth service.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.fd_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM
_DEFAULT_EXPIRE = timedelta(minutes=30)


def create_access_token(user_id: str, expires_in: timedelta = _DEFAULT_EXPIRE) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + expires_in,
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature, expiry or token type is wrong.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type", "access") != "access":
        raise InvalidCredentialsError()
    return payload
