"""Bearer token handling.

Tokens are issued by the identity provider; this service only verifies them
and reads the user id from the ``sub`` claim. ``create_access_token`` exists
for tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from huddle.core.config import get_settings

# OAuth2 scheme for token handling
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")


class TokenData(BaseModel):
    """Data embedded in JWT token."""

    sub: UUID
    exp: datetime

    def model_dump(self, **kwargs):
        """Serialize UUID as string and datetime as timestamp."""
        data = super().model_dump(**kwargs)
        data["sub"] = str(data["sub"])
        if isinstance(data["exp"], datetime):
            data["exp"] = int(data["exp"].timestamp())
        return data

    @classmethod
    def from_payload(cls, payload: dict):
        """Create TokenData from JWT payload, converting timestamp back to datetime."""
        data = payload.copy()
        if "exp" in data and isinstance(data["exp"], (int, float)):
            data["exp"] = datetime.fromtimestamp(data["exp"], tz=timezone.utc)
        return cls(**data)


def create_access_token(
    user_id: UUID, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a new JWT access token."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = TokenData(sub=user_id, exp=expire).model_dump()
    encoded_jwt = jwt.encode(
        to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    return str(encoded_jwt)


def decode_user_id(token: str) -> Optional[UUID]:
    """Return the user id of a valid token, or None."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        token_data = TokenData.from_payload(payload)
    except (JWTError, ValueError):
        return None

    if datetime.now(timezone.utc) > token_data.exp:
        return None
    return token_data.sub


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> UUID:
    """Dependency to get the authenticated user id from the bearer token."""
    user_id = decode_user_id(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
