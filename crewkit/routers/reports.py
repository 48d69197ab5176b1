import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
import structlog

from crewkit.db import get_session
from crewkit.deps import require_roles
from crewkit.error import NotFound
from crewkit.models import EndOfDayReport, User
from crewkit.pagination import MAX_LIMIT, paginate
from crewkit.schemas import (
    EodCreate,
    EodDetail,
    EodRead,
    EodSummary,
    FieldLogImport,
    FieldLogReport,
    FieldLogRow,
    ImportResult,
)
from crewkit.services import field_logs, reports
from crewkit.services.policy import ADMINS, MANAGERS, authorize

router = APIRouter(prefix="/reports", tags=["reports"])

logger = structlog.get_logger(__name__)

managers = require_roles(*MANAGERS, message="Manager or Admin access required")
admins = require_roles(*ADMINS, message="Admin access required")


def _with_workers(session: Session, report: EndOfDayReport) -> dict:
    data = EodRead.model_validate(report).model_dump()
    data["workers"] = reports.workers_of(session, report)
    return data


@router.get("/eod", response_model=list[EodRead])
def list_reports(
    team_id: Optional[int] = Query(None, alias="teamId"),
    start_date: Optional[dt.date] = Query(None, alias="startDate"),
    end_date: Optional[dt.date] = Query(None, alias="endDate"),
    created_by_id: Optional[int] = Query(None, alias="createdById"),
    worker_id: Optional[int] = Query(None, alias="workerId"),
    session: Session = Depends(get_session),
    user: User = Depends(managers),
):
    rows = reports.list_reports(
        session,
        user,
        team_id=team_id,
        start=start_date,
        end=end_date,
        created_by_id=created_by_id,
        worker_id=worker_id,
    )
    return [_with_workers(session, r) for r in rows]


@router.post("/eod", response_model=EodRead, status_code=201)
def create_report(
    data: EodCreate,
    session: Session = Depends(get_session),
    user: User = Depends(managers),
):
    report = reports.create_report(session, user, data)
    return _with_workers(session, report)


@router.get("/eod/summary", response_model=EodSummary)
def daily_summary(
    date: Optional[dt.date] = None,
    team_id: Optional[int] = Query(None, alias="teamId"),
    session: Session = Depends(get_session),
    user: User = Depends(managers),
):
    return reports.daily_summary(session, user, date, team_id)


@router.get("/eod/{report_id}", response_model=EodDetail)
def get_report(
    report_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(managers),
):
    report = session.get(EndOfDayReport, report_id)
    if not report:
        raise NotFound("Report not found")
    authorize(user, "report:view", report)
    return reports.report_detail(session, report)


@router.delete("/eod/{report_id}")
def delete_report(
    report_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(admins),
):
    report = session.get(EndOfDayReport, report_id)
    if not report:
        raise NotFound("Report not found")
    session.delete(report)
    session.commit()
    logger.info("eod_report_deleted", report_id=report_id, by=user.id)
    return {"ok": True}


@router.get("/field-logs", response_model=FieldLogReport)
def list_field_logs(
    start_date: Optional[dt.date] = Query(None, alias="startDate"),
    end_date: Optional[dt.date] = Query(None, alias="endDate"),
    location: Optional[str] = None,
    submitted_by: Optional[str] = Query(None, alias="submittedBy"),
    aggregate: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    _user: User = Depends(require_roles(*MANAGERS, message="Access denied")),
):
    conds = field_logs.filter_conditions(
        start=start_date, end=end_date, location=location, submitted_by=submitted_by
    )
    rollup = field_logs.summarize(session, conds)
    if aggregate:
        return rollup

    rows, pagination = paginate(session, field_logs.list_stmt(conds), page, limit)
    return {"logs": rows, "pagination": pagination, **rollup}


@router.get("/import")
def import_template(_user: User = Depends(admins)):
    columns = [info.alias or name for name, info in FieldLogRow.model_fields.items()]
    example = {
        "location": "West Mountain Phase 1",
        "workers": "@John Doe,@Jane Smith",
        "workerCount": 2,
        "hoursWorked": 8,
        "strandHungFootage": 2500,
        "polesAttached": 12,
        "notes": "Completed strand installation on poles 1-12",
        "submittedBy": "@John Doe",
        "timestamp": "Jan 15, 2025, 5:00:00 PM",
    }
    return {"template": {"columns": columns, "example": example}}


@router.post("/import", response_model=ImportResult)
def import_field_logs(
    data: FieldLogImport,
    session: Session = Depends(get_session),
    _user: User = Depends(admins),
):
    return field_logs.import_rows(session, data.rows)
