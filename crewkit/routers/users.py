from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from crewkit.db import get_session
from crewkit.deps import require_roles
from crewkit.error import Conflict, NotFound, ValidationFailed
from crewkit.models import (
    Assembly,
    AssemblyUsageLog,
    EndOfDayReport,
    EquipmentLog,
    Role,
    SystemSettings,
    Team,
    User,
)
from crewkit.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from crewkit.schemas import Page, UserCreate, UserRead, UserUpdate
from crewkit.security import hash_password
from crewkit.services.policy import ADMINS, authorize

router = APIRouter(prefix="/users", tags=["users"])

logger = structlog.get_logger(__name__)

admin_only = require_roles(*ADMINS, message="Admin access required")


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _check_team(session: Session, team_id: Optional[int]) -> None:
    if team_id is not None and session.get(Team, team_id) is None:
        raise ValidationFailed(f"Team {team_id} does not exist")


def _commit_unique_email(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A user with this email already exists", code="EMAIL_EXISTS")


@router.get("", response_model=Page[UserRead])
def list_users(
    search: Optional[str] = None,
    role: Optional[Role] = None,
    team_id: Optional[int] = Query(None, alias="teamId"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    _user: User = Depends(admin_only),
):
    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.email.ilike(like), User.name.ilike(like)))
    if role is not None:
        stmt = stmt.where(User.role == role)
    if team_id is not None:
        stmt = stmt.where(User.team_id == team_id)

    rows, pagination = paginate(session, stmt, page, limit)
    return {"data": rows, "pagination": pagination}


@router.post("", response_model=UserRead, status_code=201)
def create_user(
    data: UserCreate,
    session: Session = Depends(get_session),
    current: User = Depends(admin_only),
):
    authorize(current, "user:assign_role", data.role, message=f"Only superusers can assign the {data.role.value} role")
    _check_team(session, data.team_id)

    email = data.email.strip().lower()
    if session.exec(select(User).where(User.email == email)).first():
        raise Conflict("A user with this email already exists", code="EMAIL_EXISTS")

    user = User(
        email=email,
        name=data.name,
        password_hash=hash_password(data.password),
        role=data.role,
        team_id=data.team_id,
    )
    session.add(user)
    _commit_unique_email(session)
    session.refresh(user)
    logger.info("user_created", user_id=user.id, role=user.role.value, by=current.id)
    return user


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(admin_only),
):
    return _get_user(session, user_id)


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    data: UserUpdate,
    session: Session = Depends(get_session),
    current: User = Depends(admin_only),
):
    target = _get_user(session, user_id)
    authorize(current, "user:manage", target, message="You cannot modify this account")

    fields = data.model_dump(exclude_unset=True)
    if "role" in fields and fields["role"] is not None and fields["role"] != target.role:
        authorize(
            current,
            "user:assign_role",
            fields["role"],
            message=f"Only superusers can assign the {fields['role'].value} role",
        )
    if "team_id" in fields:
        _check_team(session, fields["team_id"])

    if fields.get("email"):
        target.email = fields["email"].strip().lower()
    if "name" in fields:
        target.name = fields["name"]
    if fields.get("role") is not None:
        target.role = fields["role"]
    if "team_id" in fields:
        target.team_id = fields["team_id"] or None
    if fields.get("password"):
        target.password_hash = hash_password(fields["password"])

    session.add(target)
    _commit_unique_email(session)
    session.refresh(target)
    return target


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    current: User = Depends(admin_only),
):
    if user_id == current.id:
        raise ValidationFailed("Cannot delete your own account")
    target = _get_user(session, user_id)
    authorize(current, "user:delete", target, message="You cannot delete this account")

    # the inventory ledger is audit history; it keeps its authors
    history = 0
    for model, column in (
        (AssemblyUsageLog, AssemblyUsageLog.user_id),
        (EquipmentLog, EquipmentLog.user_id),
        (Assembly, Assembly.created_by_id),
        (EndOfDayReport, EndOfDayReport.created_by_id),
    ):
        history += session.exec(select(func.count()).select_from(model).where(column == user_id)).one()
    if history:
        raise Conflict("User has usage, inventory or report history and cannot be deleted", code="USER_HAS_HISTORY")

    for team in session.exec(select(Team).where(Team.creator_id == user_id)).all():
        team.creator_id = current.id
        session.add(team)

    session.exec(
        update(SystemSettings).where(SystemSettings.updated_by_id == user_id).values(updated_by_id=None)
    )
    session.delete(target)
    session.commit()
    logger.info("user_deleted", user_id=user_id, by=current.id)
    return {"ok": True}
