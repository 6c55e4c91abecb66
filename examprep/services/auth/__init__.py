from datetime import datetime, timedelta, timezone

from bson.objectid import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from jose import jwt, JWTError
from pydantic import BaseModel

from examprep.models.user import User
from examprep.utils.config import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login")

CREDENTIALS_ERROR = "Could not validate credentials"


class TokenPair(BaseModel):
    """Pair of JWT tokens used by the client for auth and refresh."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def create_token(subject: str, token_version: str, expires_delta: timedelta, token_type: str) -> str:
    """Create a signed JWT with subject, token version, expiration and type."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "tv": token_version,
        "typ": token_type,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_tokens(user: User) -> TokenPair:
    access = create_token(
        subject=str(user.id),
        token_version=user.token_version,
        expires_delta=timedelta(minutes=settings.access_token_expires_minutes),
        token_type="access",
    )
    refresh = create_token(
        subject=str(user.id),
        token_version=user.token_version,
        expires_delta=timedelta(days=settings.refresh_token_expires_days),
        token_type="refresh",
    )
    return TokenPair(access_token=access, refresh_token=refresh)


def decode_token(token: str, expected_type: str) -> tuple[str, str]:
    """Return (user_id, token_version) from a token of the expected type or raise JWTError."""
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    user_id: str | None = payload.get("sub")
    token_version: str | None = payload.get("tv")
    if user_id is None or token_version is None or payload.get("typ") != expected_type:
        raise JWTError(f"Not an {expected_type} token")
    return user_id, token_version


def load_user(user_id: str, token_version: str) -> User | None:
    """User matching the token, or None when missing or logged out since issue."""
    if not ObjectId.is_valid(user_id):
        return None
    user = User.objects(id=user_id).first()
    if not user or user.token_version != token_version:
        return None
    return user


def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    """Auth dependency that validates an access token and returns the user.

    Rejects invalid tokens, tokens with mismatched token versions (logout)
    and suspended accounts.
    """
    try:
        user_id, token_version = decode_token(token, "access")
    except JWTError:
        raise HTTPException(status_code=401, detail=CREDENTIALS_ERROR)

    user = load_user(user_id, token_version)
    if not user:
        raise HTTPException(status_code=401, detail=CREDENTIALS_ERROR)
    if user.is_suspended:
        raise HTTPException(status_code=403, detail="Account suspended")
    return user
