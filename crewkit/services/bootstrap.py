from typing import Optional

from sqlmodel import Session, select
import structlog

from crewkit.models import Role, User
from crewkit.security import hash_password

logger = structlog.get_logger(__name__)


def ensure_superuser(session: Session, email: Optional[str], password: Optional[str]) -> Optional[User]:
    """Create the first SUPERUSER account unless one already exists."""
    if not email or not password:
        return None

    existing = session.exec(select(User).where(User.role == Role.SUPERUSER)).first()
    if existing:
        return existing

    user = User(
        email=email.strip().lower(),
        name="Superuser",
        password_hash=hash_password(password),
        role=Role.SUPERUSER,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("superuser_bootstrapped", user_id=user.id, email=user.email)
    return user
