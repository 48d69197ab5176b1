from datetime import date
from typing import Iterable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from crewkit.error import Conflict, Forbidden, NotFound, ValidationFailed
from crewkit.models import AssemblyUsageLog, EndOfDayReport, Role, Team, User
from crewkit.schemas import EodCreate
from crewkit.services import clock
from crewkit.services.policy import is_admin

logger = structlog.get_logger(__name__)


def is_fiber(categories: Iterable[str]) -> bool:
    return any("fiber" in (c or "").lower() for c in categories)


def logs_for_day(session: Session, user_ids: list[int], day: date) -> list[AssemblyUsageLog]:
    if not user_ids:
        return []
    start, end = clock.day_bounds(day)
    return list(
        session.exec(
            select(AssemblyUsageLog)
            .where(
                AssemblyUsageLog.user_id.in_(user_ids),
                AssemblyUsageLog.date >= start,
                AssemblyUsageLog.date < end,
            )
            .order_by(AssemblyUsageLog.date, AssemblyUsageLog.id)
        ).all()
    )


def items_in(log: AssemblyUsageLog) -> int:
    return log.quantity * sum(item.quantity for item in log.assembly.items)


def totals_for(logs: list[AssemblyUsageLog]) -> dict:
    assemblies = sum(log.quantity for log in logs)
    items = sum(items_in(log) for log in logs)
    footage = sum(log.footage or 0 for log in logs if is_fiber(log.assembly.categories))
    return {
        "assemblies_used": assemblies,
        "items_consumed": items,
        "fiber_footage": footage or None,
    }


def usage_by_worker(workers: list[User], logs: list[AssemblyUsageLog]) -> list[dict]:
    rows = []
    for worker in workers:
        mine = [log for log in logs if log.user_id == worker.id]
        rows.append(
            {
                "user": worker,
                "has_activity": bool(mine),
                "total_assemblies": sum(log.quantity for log in mine),
                "total_items": sum(items_in(log) for log in mine),
                "logs": mine,
            }
        )
    return rows


def _team_scope(user: User, team_id: Optional[int]) -> Optional[int]:
    """Team a report query runs against; None means every team (admins only)."""
    if user.role == Role.MANAGER:
        if user.team_id is None:
            raise Forbidden("You are not assigned to a team")
        return user.team_id
    if is_admin(user):
        return team_id
    raise Forbidden("Access denied")


def daily_summary(session: Session, user: User, day: Optional[date] = None, team_id: Optional[int] = None) -> dict:
    scope = _team_scope(user, team_id)
    day = day or clock.today()

    stmt = select(User).order_by(User.id)
    if scope is not None:
        stmt = stmt.where(User.team_id == scope)
    members = list(session.exec(stmt).all())

    logs = logs_for_day(session, [m.id for m in members], day)
    workers = [m for m in members if m.role in (Role.FIELD, Role.MANAGER)]

    existing = None
    if scope is not None:
        existing = session.exec(
            select(EndOfDayReport).where(EndOfDayReport.team_id == scope, EndOfDayReport.date == day)
        ).first()

    return {
        "date": day,
        "team_id": scope,
        "team_members": members,
        "usage_by_worker": usage_by_worker(workers, logs),
        "totals": totals_for(logs),
        "report_exists": existing is not None,
        "existing_report_id": existing.id if existing else None,
    }


def list_reports(
    session: Session,
    user: User,
    *,
    team_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    created_by_id: Optional[int] = None,
    worker_id: Optional[int] = None,
) -> list[EndOfDayReport]:
    scope = _team_scope(user, team_id)

    stmt = select(EndOfDayReport).order_by(EndOfDayReport.date.desc(), EndOfDayReport.id.desc())
    if scope is not None:
        stmt = stmt.where(EndOfDayReport.team_id == scope)
    if start is not None:
        stmt = stmt.where(EndOfDayReport.date >= start)
    if end is not None:
        stmt = stmt.where(EndOfDayReport.date <= end)
    if created_by_id is not None:
        stmt = stmt.where(EndOfDayReport.created_by_id == created_by_id)

    reports = list(session.exec(stmt).all())
    if worker_id is not None:
        # JSON list column, filtered here to stay portable across backends
        reports = [r for r in reports if worker_id in (r.workers_present or [])]
    return reports


def workers_of(session: Session, report: EndOfDayReport) -> list[User]:
    ids = report.workers_present or []
    if not ids:
        return []
    return list(session.exec(select(User).where(User.id.in_(ids)).order_by(User.id)).all())


def create_report(session: Session, user: User, data: EodCreate) -> EndOfDayReport:
    if user.role == Role.MANAGER and user.team_id is None:
        raise Forbidden("You are not assigned to a team")

    team_id = data.team_id if is_admin(user) and data.team_id else user.team_id
    if not team_id:
        raise ValidationFailed("Team ID is required")
    if session.get(Team, team_id) is None:
        raise NotFound("Team not found")

    day = data.date or clock.today()
    exists = session.exec(
        select(EndOfDayReport).where(EndOfDayReport.team_id == team_id, EndOfDayReport.date == day)
    ).first()
    if exists:
        raise Conflict("A report already exists for this team on this date")

    workers = list(dict.fromkeys(data.workers_present))
    computed = totals_for(logs_for_day(session, workers, day))

    report = EndOfDayReport(
        date=day,
        team_id=team_id,
        created_by_id=user.id,
        workers_present=workers,
        total_assemblies_used=(
            data.total_assemblies_used if data.total_assemblies_used is not None else computed["assemblies_used"]
        ),
        total_items_consumed=(
            data.total_items_consumed if data.total_items_consumed is not None else computed["items_consumed"]
        ),
        total_fiber_footage=(
            data.total_fiber_footage if data.total_fiber_footage is not None else computed["fiber_footage"]
        ),
        notes=data.notes or None,
        issues=data.issues or None,
    )
    session.add(report)
    try:
        session.commit()
    except IntegrityError:
        # lost a race against another report for the same team/day
        session.rollback()
        raise Conflict("A report already exists for this team on this date")

    session.refresh(report)
    logger.info("eod_report_created", report_id=report.id, team_id=team_id, date=str(day), user_id=user.id)
    return report


def report_detail(session: Session, report: EndOfDayReport) -> dict:
    workers = workers_of(session, report)
    logs = logs_for_day(session, [w.id for w in workers], report.date)
    data = {name: getattr(report, name) for name in EndOfDayReport.model_fields}
    data.update(
        team=report.team,
        created_by=report.created_by,
        workers=workers,
        usage_by_worker=usage_by_worker(workers, logs),
    )
    return data
