from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select
import structlog

from crewkit.db import get_session
from crewkit.deps import require_user
from crewkit.error import _auth_401
from crewkit.models import User
from crewkit.schemas import Token, UserRead
from crewkit.security import create_access_token, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])

logger = structlog.get_logger(__name__)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    email = form_data.username.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()
    if (not user) or (not verify_password(form_data.password, user.password_hash)):
        logger.info("login_failed", email=email)
        raise _auth_401("INVALID_CREDENTIALS", "Invalid email or password")

    token = create_access_token(str(user.id))
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=UserRead)
def me(user: User = Depends(require_user)):
    return user
