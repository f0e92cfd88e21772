from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from fee_engine.core.deps import get_db
from fee_engine.core.security import decode_access_token
from fee_engine.models.back_office_user import BackOfficeUser

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> BackOfficeUser:
    """Resolve the back-office user behind the bearer token."""
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if not payload or payload.get("role") != "back_office" or "sub" not in payload:
        raise _unauthorized("Invalid or expired token")
    user = db.query(BackOfficeUser).filter(BackOfficeUser.id == payload["sub"]).first()
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user
