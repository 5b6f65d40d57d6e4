# utils/tokenJWT.py
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import settings
from schemas.user import Buyer, CurrentUser, Vendor

# Authorization scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Generate a new JWT access token for a user id and role ("corporate" or "vendor")
def create_access_token(user_id: int, role: str, expires_delta: timedelta = None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

# Resolve the caller from the bearer token issued by the identity provider
def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise credentials_exception

    role = payload.get("role")
    if role == "corporate":
        return Buyer(id=user_id)
    if role == "vendor":
        return Vendor(id=user_id)
    raise credentials_exception

# Only corporate buyers may use the cart and checkout
def require_buyer(current_user: CurrentUser = Depends(get_current_user)) -> Buyer:
    if not isinstance(current_user, Buyer):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only buyers can perform this action")
    return current_user

def require_vendor(current_user: CurrentUser = Depends(get_current_user)) -> Vendor:
    if not isinstance(current_user, Vendor):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only vendors can perform this action")
    return current_user
