from datetime import datetime
import io
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.table import Table, TableStyleInfo
from sqlalchemy import func, or_
from sqlmodel import Session, select

from crewkit.config import settings
from crewkit.db import get_session
from crewkit.deps import require_roles, require_user
from crewkit.error import ValidationFailed
from crewkit.models import Equipment, EquipmentLog, EquipmentLogType, Inventory, UnitType, User
from crewkit.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from crewkit.schemas import (
    EquipmentLogRead,
    InventoryAdjust,
    InventoryPage,
    InventoryRead,
    Page,
    StockStatus,
)
from crewkit.services import clock
from crewkit.services.ledger import adjust_inventory
from crewkit.services.policy import MANAGERS

router = APIRouter(prefix="/inventory", tags=["inventory"])

LOW_STOCK_MAX = 5

STATUS_CONDITIONS = {
    StockStatus.out_of_stock: lambda: Inventory.quantity <= 0,
    StockStatus.low_stock: lambda: (Inventory.quantity > 0) & (Inventory.quantity <= LOW_STOCK_MAX),
    StockStatus.in_stock: lambda: Inventory.quantity > LOW_STOCK_MAX,
}


def _summary(session: Session) -> dict:
    def count(*conds) -> int:
        return session.exec(select(func.count()).select_from(Inventory).where(*conds)).one()

    return {
        "total": count(),
        "in_stock": count(STATUS_CONDITIONS[StockStatus.in_stock]()),
        "low_stock": count(STATUS_CONDITIONS[StockStatus.low_stock]()),
        "out_of_stock": count(STATUS_CONDITIONS[StockStatus.out_of_stock]()),
    }


def _unit_types(session: Session) -> list[UnitType]:
    rows = session.exec(
        select(Equipment.unit_type).where(Equipment.is_archived == False).distinct()  # noqa: E712
    ).all()
    return sorted(rows, key=lambda u: u.value)


def _inventory_stmt(search: Optional[str], status: Optional[StockStatus], unit_type: Optional[UnitType]):
    stmt = select(Inventory).join(Equipment, Equipment.id == Inventory.equipment_id)
    if search and search.strip():
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Equipment.name.ilike(like), Equipment.sku.ilike(like)))
    if unit_type is not None:
        stmt = stmt.where(Equipment.unit_type == unit_type)
    if status is not None:
        stmt = stmt.where(STATUS_CONDITIONS[status]())
    return stmt.order_by(Equipment.name, Inventory.id)


@router.get("", response_model=InventoryPage)
def list_inventory(
    search: Optional[str] = None,
    status: Optional[StockStatus] = None,
    unit_type: Optional[UnitType] = Query(None, alias="unitType"),
    fetch_all: bool = Query(False, alias="all"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = _inventory_stmt(search, status, unit_type)
    body = {"summary": _summary(session), "unit_types": _unit_types(session)}

    if fetch_all:
        body["data"] = session.exec(stmt).all()
        return body

    rows, pagination = paginate(session, stmt, page, limit)
    body.update(data=rows, pagination=pagination)
    return body


@router.post("", response_model=InventoryRead)
def update_inventory(
    body: InventoryAdjust,
    session: Session = Depends(get_session),
    user: User = Depends(require_roles(*MANAGERS, message="Only managers and admins can directly modify inventory")),
):
    return adjust_inventory(session, user, body.equipment_id, body.type, body.quantity, body.notes)


@router.get("/logs", response_model=Page[EquipmentLogRead])
def list_equipment_logs(
    equipment_id: Optional[int] = Query(None, ge=1, alias="equipmentId"),
    type: Optional[EquipmentLogType] = Query(None, description="ADD/REMOVE/USED/RETURNED/ADJUSTED"),
    user_id: Optional[int] = Query(None, ge=1, alias="userId"),
    tz: Optional[str] = Query(None, description="Zone used when start/end carry no offset, e.g. America/Chicago"),
    start: Optional[str] = Query(None, description="Start date/time, e.g. 2026-01-12 or 2026-01-12T08:30:00"),
    end: Optional[str] = Query(None, description="End date/time (exclusive), e.g. 2026-01-13"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
    _user: User = Depends(require_roles(*MANAGERS, message="Manager or Admin access required")),
):
    stmt = select(EquipmentLog)

    if equipment_id is not None:
        stmt = stmt.where(EquipmentLog.equipment_id == equipment_id)
    if type is not None:
        stmt = stmt.where(EquipmentLog.type == type)
    if user_id is not None:
        stmt = stmt.where(EquipmentLog.user_id == user_id)

    zone = clock.get_zone(tz)
    start_dt = clock.parse_dt_or_date(start, is_end=False, assume_tz=zone) if start else None
    end_dt = clock.parse_dt_or_date(end, is_end=True, assume_tz=zone) if end else None

    if start_dt is not None and end_dt is not None and start_dt >= end_dt:
        raise ValidationFailed("start must be earlier than end")
    if start_dt is not None:
        stmt = stmt.where(EquipmentLog.date >= start_dt)
    if end_dt is not None:
        stmt = stmt.where(EquipmentLog.date < end_dt)

    stmt = stmt.order_by(EquipmentLog.date.desc(), EquipmentLog.id.desc())
    rows, pagination = paginate(session, stmt, page, limit)
    return {"data": rows, "pagination": pagination}


@router.get("/export.xlsx")
def export_inventory_xlsx(
    search: Optional[str] = None,
    status: Optional[StockStatus] = None,
    unit_type: Optional[UnitType] = Query(None, alias="unitType"),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    rows = session.exec(_inventory_stmt(search, status, unit_type)).all()

    headers = ["ID", "Name", "SKU", "Unit", "Quantity", "Price", "Value", "Updated"]

    wb = Workbook()
    ws = wb.active
    ws.title = "Inventory"

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append(headers)
    ws.row_dimensions[1].height = 26
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for inv in rows:
        eq = inv.equipment
        ws.append([
            eq.id,
            eq.name,
            eq.sku,
            eq.unit_type.value,
            inv.quantity,
            eq.price_per_unit,
            inv.quantity * eq.price_per_unit,
            inv.updated_at,
        ])

    data_end_row = 1 + len(rows)
    ws.freeze_panes = "A2"

    for r in range(2, data_end_row + 1):
        ws.cell(row=r, column=5).number_format = "0"
        ws.cell(row=r, column=6).number_format = "0.00"
        ws.cell(row=r, column=7).number_format = "0.00"
        ws.cell(row=r, column=8).number_format = "yyyy-mm-dd hh:mm:ss"

    for letter, width in {"A": 8, "B": 36, "C": 18, "D": 10, "E": 10, "F": 10, "G": 12, "H": 20}.items():
        ws.column_dimensions[letter].width = width

    # a table needs at least the header row
    table = Table(displayName="InventoryLedger", ref=f"A1:H{max(1, data_end_row)}")
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showFirstColumn=False,
        showLastColumn=False,
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(table)

    ws.append([])
    ws.append(["Exported", datetime.now(clock.get_zone()).strftime("%Y-%m-%d %H:%M:%S"), settings.timezone])

    buf = io.BytesIO()
    wb.save(buf)

    return Response(
        content=buf.getvalue(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="inventory.xlsx"'},
    )
