from fastapi import APIRouter, Depends
from sqlmodel import Session
import structlog

from crewkit.db import get_session
from crewkit.deps import require_user
from crewkit.models import SystemSettings, User
from crewkit.schemas import SettingsRead, SettingsUpdate
from crewkit.services import clock
from crewkit.services.policy import authorize

router = APIRouter(prefix="/settings", tags=["settings"])

logger = structlog.get_logger(__name__)

SETTINGS_ID = 1


def get_or_create_settings(session: Session) -> SystemSettings:
    row = session.get(SystemSettings, SETTINGS_ID)
    if row is None:
        row = SystemSettings(id=SETTINGS_ID)
        session.add(row)
        session.commit()
        session.refresh(row)
    return row


@router.get("", response_model=SettingsRead)
def read_settings(session: Session = Depends(get_session)):
    return get_or_create_settings(session)


@router.put("", response_model=SettingsRead)
def update_settings(
    data: SettingsUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    authorize(user, "settings:update", message="Only superusers can update system settings")

    row = get_or_create_settings(session)
    row.company_name = data.company_name
    row.updated_by_id = user.id
    row.updated_at = clock.utcnow()
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("settings_updated", company_name=row.company_name, user_id=user.id)
    return row
