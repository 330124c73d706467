import hmac
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from . import config

pwd_context = CryptContext(schemes=["argon2", "bcrypt"], deprecated="auto")

security = HTTPBearer()


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def authenticate_admin(username: str, password: str) -> bool:
    if not config.ADMIN_PASSWORD_HASH:
        return False
    if not hmac.compare_digest(username.encode("utf-8"), config.ADMIN_USERNAME.encode("utf-8")):
        return False
    return verify_password(password, config.ADMIN_PASSWORD_HASH)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def get_current_admin(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(credentials.credentials, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise credentials_exception

    username = payload.get("sub")
    if username is None:
        raise credentials_exception
    if username != config.ADMIN_USERNAME or payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Admin access required.",
        )
    return {"username": username, "is_admin": True}


if __name__ == "__main__":
    # python -m storefront.auth <password>  ->  value for ADMIN_PASSWORD_HASH
    if len(sys.argv) != 2:
        sys.exit("usage: python -m storefront.auth <password>")
    print(get_password_hash(sys.argv[1]))
