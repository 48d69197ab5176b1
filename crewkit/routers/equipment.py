from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlmodel import Session, select

from crewkit.db import get_session
from crewkit.deps import require_user
from crewkit.error import Forbidden, NotFound
from crewkit.models import Equipment, User
from crewkit.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from crewkit.schemas import EquipmentRead, Page
from crewkit.services.synonyms import expand_search_query

router = APIRouter(prefix="/equipment", tags=["equipment"])

READ_ONLY_MESSAGE = "Equipment is managed in BoxHero; run a sync to change the catalog"


def search_condition(search: str):
    terms = expand_search_query(search)
    conds = []
    for term in terms:
        like = f"%{term}%"
        conds.extend(
            [
                Equipment.name.ilike(like),
                Equipment.sku.ilike(like),
                Equipment.description.ilike(like),
            ]
        )
    return or_(*conds)


@router.get("", response_model=Page[EquipmentRead])
def list_equipment(
    search: Optional[str] = None,
    include_archived: bool = Query(False, alias="includeArchived"),
    fetch_all: bool = Query(False, alias="all"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = select(Equipment).order_by(Equipment.name, Equipment.id)
    if not include_archived:
        stmt = stmt.where(Equipment.is_archived == False)  # noqa: E712
    if search and search.strip():
        stmt = stmt.where(search_condition(search))

    if fetch_all:
        return {"data": session.exec(stmt).all()}

    rows, pagination = paginate(session, stmt, page, limit)
    return {"data": rows, "pagination": pagination}


@router.get("/{equipment_id}", response_model=EquipmentRead)
def get_equipment(
    equipment_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    equipment = session.get(Equipment, equipment_id)
    if not equipment:
        raise NotFound("Equipment not found")
    return equipment


@router.post("")
def create_equipment(_user: User = Depends(require_user)):
    raise Forbidden(READ_ONLY_MESSAGE)


@router.put("/{equipment_id}")
def update_equipment(equipment_id: int, _user: User = Depends(require_user)):
    raise Forbidden(READ_ONLY_MESSAGE)


@router.delete("/{equipment_id}")
def delete_equipment(equipment_id: int, _user: User = Depends(require_user)):
    raise Forbidden(READ_ONLY_MESSAGE)
