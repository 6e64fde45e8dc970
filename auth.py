import logging
from datetime import datetime, timezone
from typing import Literal, Optional, Tuple

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import (
    ACCESS_TOKEN_EXPIRE,
    ALGORITHM,
    IS_PRODUCTION,
    JWT_SECRET,
    NEW_TOKEN_HEADER,
    SESSION_COOKIE,
    TOKEN_REFRESH_THRESHOLD,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


class AuthContext(BaseModel):
    """Who is calling, as established from the session token."""
    user_id: str
    role: str = "user"
    token_source: Literal["cookie", "header"] = "header"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id: str, role: str, expires_delta=None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or ACCESS_TOKEN_EXPIRE)
    to_encode = {"user_id": user_id, "role": role, "exp": expire}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.info("Token verification failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def peek_role(token: Optional[str]) -> Optional[str]:
    """Role carried by a token, or None when it cannot be verified."""
    if not token:
        return None
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM]).get("role")
    except JWTError as exc:
        logger.debug("Ignoring unverifiable token: %s", exc)
        return None


def extract_token(request: Request, bearer: Optional[str]) -> Tuple[Optional[str], str]:
    cookie = request.cookies.get(SESSION_COOKIE)
    if cookie:
        return cookie, "cookie"
    return bearer, "header"


def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(ACCESS_TOKEN_EXPIRE.total_seconds()),
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="strict" if IS_PRODUCTION else "lax",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(
        SESSION_COOKIE,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="strict" if IS_PRODUCTION else "lax",
    )


def get_current_user(request: Request, response: Response, bearer: Optional[str] = Depends(oauth2_scheme)) -> AuthContext:
    token, source = extract_token(request, bearer)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: No token provided")

    payload = decode_token(token)
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    role = payload.get("role", "user")

    remaining = payload.get("exp", 0) - datetime.now(timezone.utc).timestamp()
    if remaining < TOKEN_REFRESH_THRESHOLD.total_seconds():
        new_token = create_access_token(user_id, role)
        set_session_cookie(response, new_token)
        if bearer:
            response.headers[NEW_TOKEN_HEADER] = new_token
        logger.debug("Rotated session token for user %s", user_id)

    return AuthContext(user_id=user_id, role=role, token_source=source)


def require_admin(current: AuthContext = Depends(get_current_user)) -> AuthContext:
    if not current.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Admin access required")
    return current
