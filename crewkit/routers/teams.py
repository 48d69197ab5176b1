from fastapi import APIRouter, Depends
from sqlalchemy import delete, update
from sqlmodel import Session, select
import structlog

from crewkit.db import get_session
from crewkit.deps import require_roles, require_user
from crewkit.error import Forbidden, NotFound, ValidationFailed
from crewkit.models import EndOfDayReport, Role, Team, User
from crewkit.schemas import TeamCreate, TeamMembersUpdate, TeamRead, TeamUpdate
from crewkit.services.policy import ADMINS, authorize, is_admin

router = APIRouter(prefix="/teams", tags=["teams"])

logger = structlog.get_logger(__name__)

admin_only = require_roles(*ADMINS, message="Admin access required")


def _get_team(session: Session, team_id: int) -> Team:
    team = session.get(Team, team_id)
    if not team:
        raise NotFound("Team not found")
    return team


@router.get("", response_model=list[TeamRead])
def list_teams(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    if is_admin(user):
        return session.exec(select(Team).order_by(Team.name)).all()
    if user.role == Role.MANAGER and user.team_id is not None:
        return session.exec(select(Team).where(Team.id == user.team_id)).all()
    raise Forbidden("Access denied")


@router.post("", response_model=TeamRead, status_code=201)
def create_team(
    data: TeamCreate,
    session: Session = Depends(get_session),
    user: User = Depends(admin_only),
):
    team = Team(name=data.name, creator_id=user.id)
    session.add(team)
    session.commit()
    session.refresh(team)
    logger.info("team_created", team_id=team.id, by=user.id)
    return team


@router.get("/{team_id}", response_model=TeamRead)
def get_team(
    team_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    team = _get_team(session, team_id)
    authorize(user, "team:view", team)
    return team


@router.put("/{team_id}", response_model=TeamRead)
def update_team(
    team_id: int,
    data: TeamUpdate,
    session: Session = Depends(get_session),
    _user: User = Depends(admin_only),
):
    team = _get_team(session, team_id)
    team.name = data.name
    session.add(team)
    session.commit()
    session.refresh(team)
    return team


@router.put("/{team_id}/members", response_model=TeamRead)
def replace_members(
    team_id: int,
    data: TeamMembersUpdate,
    session: Session = Depends(get_session),
    _user: User = Depends(admin_only),
):
    team = _get_team(session, team_id)
    member_ids = list(dict.fromkeys(data.member_ids))
    if member_ids:
        found = session.exec(select(User.id).where(User.id.in_(member_ids))).all()
        missing = sorted(set(member_ids) - set(found))
        if missing:
            raise ValidationFailed(f"Unknown user ids: {missing}")

    session.exec(update(User).where(User.team_id == team.id).values(team_id=None))
    if member_ids:
        session.exec(update(User).where(User.id.in_(member_ids)).values(team_id=team.id))
    session.commit()
    session.refresh(team)
    return team


@router.delete("/{team_id}")
def delete_team(
    team_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(admin_only),
):
    team = _get_team(session, team_id)
    session.exec(update(User).where(User.team_id == team.id).values(team_id=None))
    session.exec(delete(EndOfDayReport).where(EndOfDayReport.team_id == team.id))
    session.delete(team)
    session.commit()
    logger.info("team_deleted", team_id=team_id, by=user.id)
    return {"ok": True}
