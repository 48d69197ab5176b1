from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from crewkit.db import get_session
from crewkit.deps import require_roles
from crewkit.models import User
from crewkit.schemas import BoxHeroItemRead, BoxHeroLocationRead, SyncResultRead, SyncStatsRead
from crewkit.services.boxhero import BoxHeroClient, get_boxhero_client, normalize_item
from crewkit.services.boxhero_sync import get_sync_stats, sync_from_boxhero
from crewkit.services.policy import ADMINS

router = APIRouter(prefix="/boxhero", tags=["boxhero"])

admin_only = require_roles(*ADMINS, message="Admin access required")


@router.post("/sync", response_model=SyncResultRead)
def run_sync(
    session: Session = Depends(get_session),
    client: BoxHeroClient = Depends(get_boxhero_client),
    user: User = Depends(admin_only),
):
    return sync_from_boxhero(session, client, user)


@router.get("/sync", response_model=SyncStatsRead)
def sync_stats(
    session: Session = Depends(get_session),
    _user: User = Depends(admin_only),
):
    return get_sync_stats(session)


@router.get("/items", response_model=List[BoxHeroItemRead])
def list_items(
    location_ids: Optional[List[int]] = Query(None),
    client: BoxHeroClient = Depends(get_boxhero_client),
    _user: User = Depends(admin_only),
):
    return [normalize_item(item) for item in client.get_items(location_ids)]


@router.get("/locations", response_model=List[BoxHeroLocationRead])
def list_locations(
    client: BoxHeroClient = Depends(get_boxhero_client),
    _user: User = Depends(admin_only),
):
    return [{"id": loc["id"], "name": loc.get("name") or f"Location {loc['id']}"} for loc in client.get_locations()]
