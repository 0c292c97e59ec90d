"""Auth API router: development login and the current-user endpoint."""

from fastapi import APIRouter, Depends

from sqlalchemy.orm import Session
from snippetbase.database import get_db
from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.schemas.user import LoginRequest, TokenResponse, UserOut
from snippetbase.services.auth_service import create_access_token, dev_login

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = dev_login(db, request.email)
    token = create_access_token(user.user_id)
    return TokenResponse(access_token=token, user=UserOut.model_validate(user))


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
