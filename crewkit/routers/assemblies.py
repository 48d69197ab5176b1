from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from crewkit.db import get_session
from crewkit.deps import require_user
from crewkit.error import Conflict, NotFound, ValidationFailed
from crewkit.models import (
    Assembly,
    AssemblyItem,
    AssemblyStatus,
    AssemblyUsageLog,
    Equipment,
    Role,
    User,
)
from crewkit.pagination import MAX_LIMIT, paginate
from crewkit.schemas import (
    AssemblyCreate,
    AssemblyItemIn,
    AssemblyRead,
    AssemblyUpdate,
    Page,
    RecentAssemblyRead,
)
from crewkit.services import clock
from crewkit.services.policy import authorize

router = APIRouter(prefix="/assemblies", tags=["assemblies"])

logger = structlog.get_logger(__name__)

DEFAULT_STATUS_FOR_ROLE = {
    Role.FIELD: AssemblyStatus.DRAFT,
    Role.MANAGER: AssemblyStatus.PENDING_APPROVAL,
    Role.ADMIN: AssemblyStatus.APPROVED,
    Role.SUPERUSER: AssemblyStatus.APPROVED,
}


def _get_assembly(session: Session, assembly_id: int) -> Assembly:
    assembly = session.get(Assembly, assembly_id)
    if not assembly:
        raise NotFound("Assembly not found")
    return assembly


def _build_items(session: Session, items: list[AssemblyItemIn]) -> list[AssemblyItem]:
    ids = {item.equipment_id for item in items}
    found = set(session.exec(select(Equipment.id).where(Equipment.id.in_(ids))).all())
    missing = sorted(ids - found)
    if missing:
        raise ValidationFailed(f"Unknown equipment ids: {missing}", code="UNKNOWN_EQUIPMENT")
    return [AssemblyItem(equipment_id=item.equipment_id, quantity=item.quantity) for item in items]


@router.get("", response_model=Page[AssemblyRead])
def list_assemblies(
    status: Optional[AssemblyStatus] = None,
    approved: bool = False,
    fetch_all: bool = Query(False, alias="all"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = select(Assembly).order_by(Assembly.created_at.desc(), Assembly.id.desc())
    if approved:
        stmt = stmt.where(Assembly.status == AssemblyStatus.APPROVED)
    elif status is not None:
        stmt = stmt.where(Assembly.status == status)

    if fetch_all:
        return {"data": session.exec(stmt).all()}

    rows, pagination = paginate(session, stmt, page, limit)
    return {"data": rows, "pagination": pagination}


@router.get("/recent", response_model=list[RecentAssemblyRead])
def recent_assemblies(
    limit: int = Query(5, ge=1, le=50),
    days: int = Query(30, ge=1, le=365),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    since = clock.utcnow() - timedelta(days=days)
    last_used = func.max(AssemblyUsageLog.created_at).label("last_used")
    rows = session.exec(
        select(AssemblyUsageLog.assembly_id, last_used, func.sum(AssemblyUsageLog.quantity))
        .join(Assembly, Assembly.id == AssemblyUsageLog.assembly_id)
        .where(
            AssemblyUsageLog.user_id == user.id,
            AssemblyUsageLog.date >= since,
            Assembly.status == AssemblyStatus.APPROVED,
        )
        .group_by(AssemblyUsageLog.assembly_id)
        .order_by(last_used.desc())
        .limit(limit)
    ).all()

    result = []
    for assembly_id, used_at, total in rows:
        assembly = session.get(Assembly, assembly_id)
        data = AssemblyRead.model_validate(assembly).model_dump()
        result.append(RecentAssemblyRead(**data, last_used=used_at, total_used=total or 0))
    return result


@router.get("/{assembly_id}", response_model=AssemblyRead)
def get_assembly(
    assembly_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return _get_assembly(session, assembly_id)


@router.post("", response_model=AssemblyRead, status_code=201)
def create_assembly(
    data: AssemblyCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    status = data.status or DEFAULT_STATUS_FOR_ROLE[user.role]
    authorize(user, "assembly:set_status", status, message=f"You cannot create an assembly as {status.value}")

    now = clock.utcnow()
    assembly = Assembly(
        name=data.name.strip(),
        description=data.description,
        status=status,
        categories=list(data.categories),
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
        items=_build_items(session, data.items),
    )
    session.add(assembly)
    session.commit()
    session.refresh(assembly)
    logger.info("assembly_created", assembly_id=assembly.id, status=status.value, user_id=user.id)
    return assembly


@router.put("/{assembly_id}", response_model=AssemblyRead)
def update_assembly(
    assembly_id: int,
    data: AssemblyUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    assembly = _get_assembly(session, assembly_id)
    authorize(user, "assembly:edit", assembly, message="You can only edit your own draft or rejected assemblies")

    fields = data.model_dump(exclude_unset=True)
    if fields.get("status") is not None and fields["status"] != assembly.status:
        authorize(
            user,
            "assembly:set_status",
            fields["status"],
            message=f"You cannot set an assembly to {fields['status'].value}",
        )
        assembly.status = fields["status"]

    if fields.get("name") is not None:
        assembly.name = fields["name"].strip()
    if "description" in fields:
        assembly.description = fields["description"]
    if "categories" in fields:
        assembly.categories = list(fields["categories"] or [])
    if data.items is not None:
        assembly.items = _build_items(session, data.items)

    assembly.updated_at = clock.utcnow()
    session.add(assembly)
    session.commit()
    session.refresh(assembly)
    return assembly


@router.delete("/{assembly_id}")
def delete_assembly(
    assembly_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    assembly = _get_assembly(session, assembly_id)
    authorize(user, "assembly:delete", assembly, message="You can only delete your own draft assemblies")

    used = session.exec(
        select(func.count()).select_from(AssemblyUsageLog).where(AssemblyUsageLog.assembly_id == assembly.id)
    ).one()
    if used:
        raise Conflict("Assembly has recorded usage and cannot be deleted", code="ASSEMBLY_IN_USE")

    session.delete(assembly)
    session.commit()
    logger.info("assembly_deleted", assembly_id=assembly_id, user_id=user.id)
    return {"ok": True}
