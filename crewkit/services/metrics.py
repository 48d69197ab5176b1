import calendar
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from crewkit.error import ValidationFailed
from crewkit.models import (
    Assembly,
    AssemblyStatus,
    AssemblyUsageLog,
    Equipment,
    EquipmentLog,
    EquipmentLogType,
    Inventory,
    Team,
    User,
)
from crewkit.schemas import MetricsPeriod
from crewkit.services import clock

EPOCH = datetime(1970, 1, 1)
TOP_N = 10


def period_start(period: MetricsPeriod, now: datetime) -> datetime:
    if period == MetricsPeriod.day:
        start, _ = clock.day_bounds(clock.local_date(now))
        return start
    if period == MetricsPeriod.week:
        return now - timedelta(days=7)
    if period == MetricsPeriod.month:
        # same day of the previous month, clamped to that month's length
        year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
        day = min(now.day, calendar.monthrange(year, month)[1])
        return now.replace(year=year, month=month, day=day)
    return EPOCH


def usage_metrics(session: Session, period: MetricsPeriod, now: Optional[datetime] = None) -> dict:
    now = now or clock.utcnow()
    start = period_start(period, now)

    eq_rows = session.exec(
        select(
            EquipmentLog.equipment_id,
            func.sum(EquipmentLog.quantity),
            func.count(EquipmentLog.id),
        )
        .where(EquipmentLog.type == EquipmentLogType.USED, EquipmentLog.date >= start)
        .group_by(EquipmentLog.equipment_id)
    ).all()

    equipment = {}
    if eq_rows:
        ids = [r[0] for r in eq_rows]
        equipment = {e.id: e for e in session.exec(select(Equipment).where(Equipment.id.in_(ids))).all()}

    equipment_usage = []
    for equipment_id, qty_sum, count in eq_rows:
        eq = equipment.get(equipment_id)
        total_used = abs(qty_sum or 0)
        equipment_usage.append(
            {
                "equipment_id": equipment_id,
                "equipment_name": eq.name if eq else "Unknown",
                "total_used": total_used,
                "usage_count": count,
                "cost": total_used * (eq.price_per_unit if eq else 0),
            }
        )

    asm_rows = session.exec(
        select(
            AssemblyUsageLog.assembly_id,
            func.sum(AssemblyUsageLog.quantity),
            func.count(AssemblyUsageLog.id),
        )
        .where(AssemblyUsageLog.date >= start)
        .group_by(AssemblyUsageLog.assembly_id)
    ).all()

    assemblies = {}
    if asm_rows:
        ids = [r[0] for r in asm_rows]
        assemblies = {a.id: a for a in session.exec(select(Assembly).where(Assembly.id.in_(ids))).all()}

    assembly_usage = [
        {
            "assembly_id": assembly_id,
            "assembly_name": assemblies[assembly_id].name if assembly_id in assemblies else "Unknown",
            "total_used": qty_sum or 0,
            "usage_count": count,
        }
        for assembly_id, qty_sum, count in asm_rows
    ]

    total_cost = sum(item["cost"] for item in equipment_usage)
    days = max(1, math.ceil((now - start).total_seconds() / 86400))

    return {
        "period": period,
        "start_date": start,
        "end_date": now,
        "equipment_usage": equipment_usage,
        "assembly_usage": assembly_usage,
        "total_cost": total_cost,
        "avg_cost_per_day": total_cost / days,
        "most_common": sorted(equipment_usage, key=lambda i: i["total_used"], reverse=True)[:TOP_N],
        "most_expensive": sorted(equipment_usage, key=lambda i: i["cost"], reverse=True)[:TOP_N],
        "total_equipment_types": len(equipment),
        "total_assemblies": len(assemblies),
    }


# ---- dashboard ----

def usage_cost(log: AssemblyUsageLog) -> float:
    """Cost of one usage log: assembly lines times the multiplier plus modifiers."""
    cost = 0.0
    for item in log.assembly.items:
        cost += item.quantity * log.quantity * item.equipment.price_per_unit
    return cost


def modifier_cost(session: Session, logs) -> tuple[float, int]:
    ids = {m.equipment_id for log in logs for m in log.modifiers}
    if not ids:
        return 0.0, 0
    prices = {
        e.id: e.price_per_unit for e in session.exec(select(Equipment).where(Equipment.id.in_(ids))).all()
    }
    cost, items = 0.0, 0
    for log in logs:
        for m in log.modifiers:
            if m.equipment_id in prices:
                cost += prices[m.equipment_id] * m.quantity
                items += m.quantity
    return cost, items


def _logs_between(session: Session, start: datetime, end: datetime) -> list[AssemblyUsageLog]:
    return list(
        session.exec(
            select(AssemblyUsageLog)
            .where(AssemblyUsageLog.date >= start, AssemblyUsageLog.date < end)
            .order_by(AssemblyUsageLog.created_at.desc(), AssemblyUsageLog.id.desc())
        ).all()
    )


def _total_cost(session: Session, logs) -> float:
    return sum(usage_cost(log) for log in logs) + modifier_cost(session, logs)[0]


def parse_month(month: Optional[str], now: datetime) -> tuple[int, int]:
    if not month or month == "current":
        local = clock.local_date(now)
        return local.year, local.month
    try:
        year_s, month_s = month.split("-")
        year, mon = int(year_s), int(month_s)
    except ValueError:
        raise ValidationFailed(f"Invalid month: {month}, expected YYYY-MM")
    if not 1 <= mon <= 12:
        raise ValidationFailed(f"Invalid month: {month}, expected YYYY-MM")
    return year, mon


def dashboard_summary(session: Session, month: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    now = now or clock.utcnow()
    year, mon = parse_month(month, now)
    prev_year, prev_mon = (year - 1, 12) if mon == 1 else (year, mon - 1)

    today_start, today_end = clock.day_bounds(clock.local_date(now))
    today_logs = _logs_between(session, today_start, today_end)

    cur_start, cur_end = clock.month_bounds(year, mon)
    prev_start, prev_end = clock.month_bounds(prev_year, prev_mon)
    current_cost = _total_cost(session, _logs_between(session, cur_start, cur_end))
    previous_cost = _total_cost(session, _logs_between(session, prev_start, prev_end))

    change = None
    if previous_cost:
        change = round((current_cost - previous_cost) / previous_cost * 100, 2)

    def count(stmt) -> int:
        return session.exec(stmt).one()

    counts = {
        "users": count(select(func.count()).select_from(User)),
        "teams": count(select(func.count()).select_from(Team)),
        "equipment": count(select(func.count()).select_from(Equipment).where(Equipment.is_archived == False)),  # noqa: E712
        "assemblies": count(select(func.count()).select_from(Assembly)),
        "pending_assemblies": count(
            select(func.count()).select_from(Assembly).where(Assembly.status == AssemblyStatus.PENDING_APPROVAL)
        ),
        "low_stock": count(
            select(func.count()).select_from(Inventory).where(Inventory.quantity > 0, Inventory.quantity <= 5)
        ),
        "out_of_stock": count(select(func.count()).select_from(Inventory).where(Inventory.quantity <= 0)),
    }

    return {
        "month": f"{year:04d}-{mon:02d}",
        "today_cost": _total_cost(session, today_logs),
        "today_usage_count": len(today_logs),
        "current_month_cost": current_cost,
        "previous_month_cost": previous_cost,
        "cost_change_percent": change,
        "recent_usage": today_logs[:5],
        "counts": counts,
    }
