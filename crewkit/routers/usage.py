from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session, select

from crewkit.db import get_session
from crewkit.deps import require_user
from crewkit.error import ValidationFailed
from crewkit.models import AssemblyUsageLog, User
from crewkit.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from crewkit.schemas import Page, TodayUsage, UsageCreate, UsageDetail, UsageRead
from crewkit.services import clock
from crewkit.services.ledger import delete_usage, record_usage
from crewkit.services.metrics import modifier_cost, usage_cost
from crewkit.services.policy import MANAGERS

router = APIRouter(prefix="/assemblies/usage", tags=["usage"])

NO_CACHE = {"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0", "Pragma": "no-cache"}


@router.post("", response_model=UsageRead, status_code=201)
def create_usage(
    data: UsageCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    return record_usage(session, user, data)


@router.get("/today", response_model=TodayUsage)
def today_usage(
    response: Response,
    fetch_all: bool = Query(False, alias="all"),
    user_id: Optional[int] = Query(None, alias="userId"),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    start, end = clock.day_bounds(clock.today())
    stmt = (
        select(AssemblyUsageLog)
        .where(AssemblyUsageLog.date >= start, AssemblyUsageLog.date < end)
        .order_by(AssemblyUsageLog.created_at.desc(), AssemblyUsageLog.id.desc())
    )

    # only managers and up may look past their own logs
    if user.role not in MANAGERS:
        stmt = stmt.where(AssemblyUsageLog.user_id == user.id)
    elif user_id is not None:
        stmt = stmt.where(AssemblyUsageLog.user_id == user_id)
    elif not fetch_all:
        stmt = stmt.where(AssemblyUsageLog.user_id == user.id)

    logs = session.exec(stmt).all()

    extra_cost, extra_items = modifier_cost(session, logs)
    summary = {
        "total_assemblies": sum(log.quantity for log in logs),
        "total_items": sum(log.quantity * item.quantity for log in logs for item in log.assembly.items)
        + extra_items,
        "total_cost": sum(usage_cost(log) for log in logs) + extra_cost,
        "log_count": len(logs),
    }
    response.headers.update(NO_CACHE)
    return {"logs": logs, "summary": summary}


@router.get("", response_model=Page[UsageDetail])
def usage_history(
    user_id: Optional[int] = Query(None, alias="userId"),
    assembly_id: Optional[int] = Query(None, alias="assemblyId"),
    start: Optional[str] = Query(None, description="Start date/time, e.g. 2026-01-12"),
    end: Optional[str] = Query(None, description="End date/time (exclusive), e.g. 2026-01-13"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    stmt = select(AssemblyUsageLog).order_by(AssemblyUsageLog.date.desc(), AssemblyUsageLog.id.desc())

    if user.role not in MANAGERS:
        stmt = stmt.where(AssemblyUsageLog.user_id == user.id)
    elif user_id is not None:
        stmt = stmt.where(AssemblyUsageLog.user_id == user_id)
    if assembly_id is not None:
        stmt = stmt.where(AssemblyUsageLog.assembly_id == assembly_id)

    zone = clock.get_zone()
    start_dt = clock.parse_dt_or_date(start, is_end=False, assume_tz=zone) if start else None
    end_dt = clock.parse_dt_or_date(end, is_end=True, assume_tz=zone) if end else None
    if start_dt is not None and end_dt is not None and start_dt >= end_dt:
        raise ValidationFailed("start must be earlier than end")
    if start_dt is not None:
        stmt = stmt.where(AssemblyUsageLog.date >= start_dt)
    if end_dt is not None:
        stmt = stmt.where(AssemblyUsageLog.date < end_dt)

    rows, pagination = paginate(session, stmt, page, limit)
    return {"data": rows, "pagination": pagination}


@router.delete("/{usage_id}")
def remove_usage(
    usage_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    restored = delete_usage(session, user, usage_id)
    return {"ok": True, "restored": len(restored)}
