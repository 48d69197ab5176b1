from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from crewkit.db import get_session
from crewkit.error import Forbidden, _auth_401
from crewkit.models import Role, User
from crewkit.security import decode_token

# auto_error=False so a missing token goes through our own 401 envelope
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not authenticated")

    try:
        subject = decode_token(token)
        user_id = int(subject)
    except Exception:
        raise _auth_401("INVALID_TOKEN", "Invalid or expired token")

    user = session.get(User, user_id)
    if not user:
        raise _auth_401("USER_NOT_FOUND", "User no longer exists")

    return user


def require_roles(*allowed: Role, message: str = "Insufficient permissions"):
    def dependency(user: User = Depends(require_user)) -> User:
        if user.role not in allowed:
            raise Forbidden(message)
        return user

    return dependency
