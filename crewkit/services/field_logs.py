"""Field work logs: spreadsheet import and production roll-ups.

Spreadsheet exports are messy. Summary lines ("End of week"), pasted notes and
cells like "Na" or "1,200" all show up, so every cell is parsed leniently and
rows that are not real entries are skipped rather than rejected.
"""
from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from crewkit.models import FieldWorkLog
from crewkit.schemas import FieldLogRow
from crewkit.services import clock

logger = structlog.get_logger(__name__)

MIN_YEAR = 2020
TOP_LOCATIONS = 50

GROUPS = {
    "aerial": ("strand_hung_footage", "poles_attached", "fiber_lashed_footage"),
    "underground": (
        "fiber_pulled_footage",
        "drilled_footage",
        "plowed_footage",
        "trenched_footage",
        "conduit_placed_footage",
    ),
    "infrastructure": (
        "handholes_placed",
        "vaults_placed",
        "msts_installed",
        "guys_placed",
        "slack_loops",
        "risers_installed",
        "splice_cases",
        "anchors_placed",
        "snowshoes_placed",
    ),
}
METRICS = tuple(name for names in GROUPS.values() for name in names)
COUNT_METRICS = frozenset(
    {
        "poles_attached",
        "handholes_placed",
        "vaults_placed",
        "msts_installed",
        "guys_placed",
        "slack_loops",
        "risers_installed",
        "splice_cases",
        "anchors_placed",
        "snowshoes_placed",
    }
)

_DATE_FORMATS = (
    "%b %d, %Y, %I:%M:%S %p",  # Jan 8, 2025, 9:49:31 PM
    "%B %d, %Y, %I:%M:%S %p",
    "%b %d, %Y",
    "%B %d, %Y",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%y",
)
_NA = {"", "na", "n/a"}


def parse_workers(value: Optional[str]) -> list[str]:
    """``"@Ann Lee, @Bo"`` -> ``["Ann Lee", "Bo"]``."""
    if not value:
        return []
    names = (part.strip().removeprefix("@").strip() for part in value.split(","))
    return [name for name in names if name]


def parse_number(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace(",", "").strip()
    if text.lower() in _NA:
        return None
    # "I0" is a common typo for "10"
    if text.startswith("I"):
        text = "1" + text[1:]
    try:
        return float(text)
    except ValueError:
        return None


def _as_count(value) -> Optional[int]:
    number = parse_number(value)
    return None if number is None else int(round(number))


def _not_a_date(lower: str) -> bool:
    return (
        "end of" in lower
        or "end " in lower
        or lower == "reported above"
        or "inputed" in lower
        or len(lower) < 6
    )


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Best-effort parse of a spreadsheet timestamp; None when it is not one."""
    text = (value or "").strip()
    if _not_a_date(text.lower()):
        return None

    try:
        parsed = clock.to_utc_naive(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        parsed = None
    if parsed is not None and parsed.year >= MIN_YEAR:
        return parsed

    # "2/28/2025 1:15:18" and other slash dates with trailing junk fall back to the date part
    for candidate in (text, text.split(" ")[0]):
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
            except ValueError:
                continue
            if parsed.year >= MIN_YEAR:
                return parsed
    return None


def is_note_row(location: Optional[str]) -> bool:
    """Summary lines and pasted notes that landed in the location column."""
    if not location:
        return True
    lower = location.lower().strip()
    return (
        "end of" in lower
        or "end " in lower
        or lower == "reported above"
        or lower.startswith("also spent")
        or "paid $" in lower
        or len(lower) < 3
        or location.startswith(('"', "Also ", "Paid "))
    )


def _submitter(value: Optional[str]) -> str:
    return (value or "").strip().removeprefix("@").strip() or "Unknown"


def import_rows(session: Session, rows: list[FieldLogRow]) -> dict:
    imported = skipped = 0
    errors: list[str] = []

    for row in rows:
        location = row.location or ""
        if is_note_row(location):
            skipped += 1
            continue

        submitted_by = row.submitted_by or ""
        stamp = parse_date(row.timestamp)
        if stamp is None:
            # dates sometimes land in the submitter or notes column
            stamp = parse_date(submitted_by)
            if stamp is not None:
                submitted_by = ""
            else:
                stamp = parse_date(row.notes)
        if stamp is None:
            skipped += 1
            hours = parse_number(row.hours_worked)
            if row.workers or (hours and hours > 0):
                errors.append(f"Missing date: {location[:30]}")
            continue

        day = stamp.date()
        location = location.strip()
        submitter = _submitter(submitted_by)
        duplicate = session.exec(
            select(FieldWorkLog.id).where(
                FieldWorkLog.date == day,
                FieldWorkLog.location == location,
                FieldWorkLog.submitted_by == submitter,
            )
        ).first()
        if duplicate is not None:
            skipped += 1
            continue

        workers = parse_workers(row.workers)
        metrics = {
            name: _as_count(getattr(row, name)) if name in COUNT_METRICS else parse_number(getattr(row, name))
            for name in METRICS
        }
        log = FieldWorkLog(
            date=day,
            location=location,
            workers_names=workers,
            worker_count=_as_count(row.worker_count) or len(workers),
            hours_worked=parse_number(row.hours_worked) or 0,
            notes=(row.notes or "").strip() or None,
            submitted_by=submitter,
            original_timestamp=stamp,
            **metrics,
        )
        session.add(log)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            errors.append(f"Error importing row: {location} - {exc}")
            continue
        imported += 1

    logger.info("field_logs_imported", imported=imported, skipped=skipped, errors=len(errors))
    return {"imported": imported, "skipped": skipped, "errors": errors}


def filter_conditions(
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
    location: Optional[str] = None,
    submitted_by: Optional[str] = None,
) -> list:
    conds = []
    if start is not None:
        conds.append(FieldWorkLog.date >= start)
    if end is not None:
        conds.append(FieldWorkLog.date <= end)
    if location and location.strip():
        conds.append(FieldWorkLog.location.ilike(f"%{location.strip()}%"))
    if submitted_by and submitted_by.strip():
        conds.append(FieldWorkLog.submitted_by.ilike(f"%{submitted_by.strip()}%"))
    return conds


def _counts_by(session: Session, column, conds: list, limit: Optional[int] = None) -> list[dict]:
    n = func.count(FieldWorkLog.id).label("n")
    stmt = select(column, n).where(*conds).group_by(column).order_by(desc("n"), column)
    if limit:
        stmt = stmt.limit(limit)
    return [{"name": name, "count": count} for name, count in session.exec(stmt).all()]


def summarize(session: Session, conds: list) -> dict:
    """Totals over every log matching ``conds``, plus location and submitter counts."""
    sums = [func.coalesce(func.sum(getattr(FieldWorkLog, name)), 0) for name in ("hours_worked",) + METRICS]
    total, hours, *values = session.exec(select(func.count(FieldWorkLog.id), *sums).where(*conds)).one()
    totals = dict(zip(METRICS, values))

    workers = set()
    for names in session.exec(select(FieldWorkLog.workers_names).where(*conds)).all():
        workers.update(names or [])

    summary = {
        "total_logs": total,
        "total_hours_worked": hours,
        "unique_workers": len(workers),
    }
    for group, names in GROUPS.items():
        summary[group] = {name: totals[name] for name in names}

    return {
        "summary": summary,
        "locations": _counts_by(session, FieldWorkLog.location, conds, TOP_LOCATIONS),
        "submitters": _counts_by(session, FieldWorkLog.submitted_by, conds),
    }


def list_stmt(conds: list):
    return select(FieldWorkLog).where(*conds).order_by(FieldWorkLog.date.desc(), FieldWorkLog.id.desc())
