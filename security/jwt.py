import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from core.config import Settings, settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    id: int
    email: Optional[str]


def _excerpt(token: str) -> str:
    return f"{token[:10]}..." if len(token) > 10 else "***"


def _coerce_id(value: Any) -> Optional[int]:
    # User ids are integer keys in users.id
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


class TokenVerifier:
    """Turns an ``Authorization`` header into an :class:`Identity` or ``None``.

    Never raises: an absent header, a wrong scheme, a bad signature or an
    expired token all come back as ``None``.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, cfg: Settings) -> "TokenVerifier":
        return cls(cfg.JWT_SECRET, cfg.JWT_ALG)

    def verify(self, authorization: Optional[str]) -> Optional[Identity]:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            logger.debug("No bearer credential on request")
            return None

        token = authorization[len(BEARER_PREFIX):]
        logger.debug("Verifying token %s", _excerpt(token))
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            logger.warning("Token verification failed: %s", e)
            return None

        user_id = _coerce_id(payload.get("userId", payload.get("sub")))
        if user_id is None:
            logger.warning("Token verification failed: missing or non-integer user id claim")
            return None
        return Identity(id=user_id, email=payload.get("email"))


def create_access_token(
    user_id: int | str,
    email: Optional[str] = None,
    minutes: Optional[int] = None,
    cfg: Settings = settings,
) -> str:
    """Issue a token in the claim shape the auth service uses (``userId``, ``email``)."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES if minutes is None else minutes)
    payload: Dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.JWT_SECRET, algorithm=cfg.JWT_ALG)
