from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fee_engine.core.deps import get_db
from fee_engine.core.security import create_access_token, verify_password
from fee_engine.models.back_office_user import BackOfficeUser
from fee_engine.schemas.auth import LoginRequest, TokenResponse

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Back-office login; the token authorizes schedule and assignment management."""
    user = db.query(BackOfficeUser).filter(BackOfficeUser.username == body.username).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive")
    return TokenResponse(access_token=create_access_token(subject=user.id))
