from datetime import datetime, timedelta, UTC
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app import models, schemas
from app.crud import user as user_crud
from app.config import settings
from app.database import get_db


# ==========================
# AUTH CONFIG
# ==========================

# Tokens are issued by the identity service; this app only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


# ==========================
# JWT TOKEN
# ==========================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def create_token_for_user(user: models.User) -> schemas.Token:
    access_token = create_access_token({"sub": str(user.id), "role": user.role})
    return schemas.Token(access_token=access_token, token_type="bearer", role=user.role)


def decode_access_token(token: str) -> schemas.TokenData:
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM]
    )
    subject = payload.get("sub")
    if subject is None:
        raise JWTError("Token has no subject")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise JWTError("Token subject is not a user id")
    return schemas.TokenData(user_id=user_id, role=payload.get("role"))


# ==========================
# AUTH HELPERS
# ==========================

def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        token_data = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user = user_crud.get_user(db, token_data.user_id)

    if user is None or not user.is_active:
        raise credentials_exception

    # The role claim must agree with the stored account.
    if token_data.role is not None and token_data.role != user.role:
        raise credentials_exception

    return user


def require_role(*roles: str):
    """Dependency factory restricting a route to the given roles."""

    def _checker(current_user: models.User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires role: {', '.join(roles)}",
            )
        return current_user

    return _checker
