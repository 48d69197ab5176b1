from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from crewkit.db import get_session
from crewkit.deps import require_roles, require_user
from crewkit.models import User
from crewkit.schemas import DashboardRead, MetricsPeriod, MetricsRead
from crewkit.services.metrics import dashboard_summary, usage_metrics
from crewkit.services.policy import ADMINS

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_model=MetricsRead)
def get_metrics(
    period: MetricsPeriod = Query(MetricsPeriod.month),
    session: Session = Depends(get_session),
    _user: User = Depends(require_roles(*ADMINS, message="Admin access required")),
):
    return usage_metrics(session, period)


@router.get("/dashboard/summary", response_model=DashboardRead)
def get_dashboard(
    month: Optional[str] = Query(None, description='"YYYY-MM" or "current"'),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return dashboard_summary(session, month)
