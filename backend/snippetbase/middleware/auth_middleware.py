"""Bearer-token authentication and admin/operator gating dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import JWTError, jwt

from snippetbase.config import settings
from snippetbase.database import get_db
from snippetbase.models.user import User
from snippetbase.services.auth_service import ALGORITHM

security = HTTPBearer()


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.query(User).filter(User.user_id == int(user_id), User.is_active == True).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_org_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_organization_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requires organization admin",
        )
    return current_user


def require_operator(current_user: User = Depends(require_org_admin)) -> User:
    """Instance-wide operator routes: jobs and derived indexes span every organization."""
    operator_org = settings.OPERATOR_ORGANIZATION_ID
    if operator_org is not None and current_user.organization_id != operator_org:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requires an operator organization admin",
        )
    return current_user
