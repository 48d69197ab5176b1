"""Inventory ledger.

Every inventory change goes through this module. A change touching several
equipment rows is validated as a whole, applied with guarded UPDATEs and
committed once, so either every line lands (with its EquipmentLog entry) or
none does.
"""
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

import structlog
from sqlalchemy import update
from sqlmodel import Session, select

from crewkit.error import Conflict, InsufficientInventory, NotFound, ValidationFailed
from crewkit.models import (
    Assembly,
    AssemblyStatus,
    AssemblyUsageLog,
    Equipment,
    EquipmentLog,
    EquipmentLogType,
    Inventory,
    UsageModifier,
    User,
)
from crewkit.schemas import InventoryAction, ModifierIn, UsageCreate
from crewkit.services import clock
from crewkit.services.policy import authorize

logger = structlog.get_logger(__name__)

LOG_TYPE_FOR_ACTION = {
    InventoryAction.ADD: EquipmentLogType.ADD,
    InventoryAction.REMOVE: EquipmentLogType.REMOVE,
    InventoryAction.USED: EquipmentLogType.USED,
    InventoryAction.RETURNED: EquipmentLogType.RETURNED,
    InventoryAction.SET: EquipmentLogType.ADJUSTED,
}


@dataclass
class Line:
    equipment_id: int
    quantity: int
    note: str


# ---- direct adjustment ----

def calc_signed_delta_and_new_qty(
    action: InventoryAction, quantity: int, old_qty: int, *, equipment_name: str = "equipment"
) -> tuple[int, int]:
    # ADD/REMOVE/USED/RETURNED take an amount > 0, SET takes the target stock >= 0
    if action != InventoryAction.SET and quantity <= 0:
        raise ValidationFailed(f"{action.value} quantity must be > 0", code="INVALID_QUANTITY")

    if action == InventoryAction.SET and quantity < 0:
        raise ValidationFailed("SET quantity must be >= 0 (target stock)", code="INVALID_QUANTITY")

    if action in (InventoryAction.ADD, InventoryAction.RETURNED):
        signed_delta = quantity
        new_qty = old_qty + quantity
    elif action in (InventoryAction.REMOVE, InventoryAction.USED):
        signed_delta = -quantity
        new_qty = old_qty - quantity
    else:  # SET
        new_qty = quantity
        signed_delta = new_qty - old_qty

    if new_qty < 0:
        raise InsufficientInventory(equipment_name, old_qty, quantity)

    if signed_delta == 0:
        raise ValidationFailed("Quantity unchanged, nothing to record", code="NO_CHANGE")

    return signed_delta, new_qty


def build_note(
    action: InventoryAction,
    input_qty: int,
    old_qty: int,
    new_qty: int,
    note: Optional[str],
) -> str:
    note_clean = (note or "").strip()
    if note_clean:
        return note_clean

    if action == InventoryAction.ADD:
        return f"Added +{input_qty} ({old_qty}->{new_qty})"
    if action == InventoryAction.RETURNED:
        return f"Returned +{input_qty} ({old_qty}->{new_qty})"
    if action == InventoryAction.REMOVE:
        return f"Removed {input_qty} ({old_qty}->{new_qty})"
    if action == InventoryAction.USED:
        return f"Used {input_qty} ({old_qty}->{new_qty})"
    return f"Count set to {input_qty} ({old_qty}->{new_qty})"


def adjust_inventory(
    session: Session,
    user: User,
    equipment_id: int,
    action: InventoryAction,
    quantity: int,
    notes: Optional[str] = None,
) -> Inventory:
    try:
        inv = session.exec(
            select(Inventory).where(Inventory.equipment_id == equipment_id).with_for_update()
        ).first()
        if not inv:
            raise NotFound("Equipment inventory not found")

        equipment = session.get(Equipment, equipment_id)
        old_qty = inv.quantity
        signed_delta, new_qty = calc_signed_delta_and_new_qty(
            action, quantity, old_qty, equipment_name=equipment.name if equipment else str(equipment_id)
        )

        # compare-and-swap on the value the delta was computed from
        result = session.exec(
            update(Inventory)
            .where(Inventory.equipment_id == equipment_id, Inventory.quantity == old_qty)
            .values(quantity=new_qty, updated_at=clock.utcnow())
        )
        if result.rowcount != 1:
            raise Conflict("Inventory changed concurrently, retry the adjustment")

        session.add(
            EquipmentLog(
                equipment_id=equipment_id,
                user_id=user.id,
                quantity=signed_delta,
                type=LOG_TYPE_FOR_ACTION[action],
                notes=build_note(action, quantity, old_qty, new_qty, notes),
            )
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(inv)
    logger.info(
        "inventory_adjusted",
        equipment_id=equipment_id,
        action=action.value,
        delta=signed_delta,
        quantity=inv.quantity,
        user_id=user.id,
    )
    return inv


# ---- usage recording ----

def build_consumption_lines(
    session: Session, assembly: Assembly, multiplier: int, modifiers: Iterable[ModifierIn]
) -> list[Line]:
    lines = [
        Line(item.equipment_id, item.quantity * multiplier, f"Used in assembly: {assembly.name}")
        for item in assembly.items
    ]
    for mod in modifiers:
        if session.get(Equipment, mod.equipment_id) is None:
            raise ValidationFailed(
                f"Unknown equipment in modifiers: {mod.equipment_id}", code="UNKNOWN_EQUIPMENT"
            )
        lines.append(
            Line(mod.equipment_id, mod.quantity, f"Extra equipment used with assembly: {assembly.name}")
        )
    return lines


def _sum_by_equipment(lines: Iterable[Line]) -> "OrderedDict[int, int]":
    totals: OrderedDict[int, int] = OrderedDict()
    for line in lines:
        totals[line.equipment_id] = totals.get(line.equipment_id, 0) + line.quantity
    return totals


def _lock_inventory(session: Session, equipment_ids: Iterable[int]) -> dict[int, Inventory]:
    ids = sorted(set(equipment_ids))
    if not ids:
        return {}
    # sorted ids give concurrent writers the same lock order
    rows = session.exec(
        select(Inventory)
        .where(Inventory.equipment_id.in_(ids))
        .order_by(Inventory.equipment_id)
        .with_for_update()
    ).all()
    return {row.equipment_id: row for row in rows}


def _equipment_names(session: Session, equipment_ids: Iterable[int]) -> dict[int, str]:
    ids = list(set(equipment_ids))
    if not ids:
        return {}
    rows = session.exec(select(Equipment).where(Equipment.id.in_(ids))).all()
    return {row.id: row.name for row in rows}


def _decrement(session: Session, equipment_id: int, quantity: int) -> bool:
    result = session.exec(
        update(Inventory)
        .where(Inventory.equipment_id == equipment_id, Inventory.quantity >= quantity)
        .values(quantity=Inventory.quantity - quantity, updated_at=clock.utcnow())
    )
    return result.rowcount == 1


def _increment(session: Session, equipment_id: int, quantity: int, stock: dict[int, Inventory]) -> None:
    if equipment_id not in stock:
        inv = Inventory(equipment_id=equipment_id, quantity=quantity)
        session.add(inv)
        stock[equipment_id] = inv
        return
    session.exec(
        update(Inventory)
        .where(Inventory.equipment_id == equipment_id)
        .values(quantity=Inventory.quantity + quantity, updated_at=clock.utcnow())
    )


def record_usage(session: Session, user: User, data: UsageCreate) -> AssemblyUsageLog:
    """Consume inventory for ``data.quantity`` uses of an approved assembly.

    All lines are checked before anything is written. Lines that hit the
    same equipment are summed. A missing inventory row counts as zero stock.
    """
    try:
        assembly = session.get(Assembly, data.assembly_id)
        if not assembly:
            raise NotFound("Assembly not found")
        if assembly.status != AssemblyStatus.APPROVED:
            raise ValidationFailed("Assembly must be approved before use", code="ASSEMBLY_NOT_APPROVED")

        lines = build_consumption_lines(session, assembly, data.quantity, data.modifiers)
        required = _sum_by_equipment(lines)
        stock = _lock_inventory(session, required.keys())
        names = _equipment_names(session, required.keys())

        for equipment_id, need in required.items():
            available = stock[equipment_id].quantity if equipment_id in stock else 0
            if available < need:
                raise InsufficientInventory(names.get(equipment_id, str(equipment_id)), available, need)

        usage = AssemblyUsageLog(
            assembly_id=assembly.id,
            user_id=user.id,
            quantity=data.quantity,
            footage=data.footage,
            date=clock.to_utc_naive(data.date) if data.date else clock.utcnow(),
            modifiers=[UsageModifier(equipment_id=m.equipment_id, quantity=m.quantity) for m in data.modifiers],
        )
        session.add(usage)
        session.flush()

        for equipment_id, need in required.items():
            if not _decrement(session, equipment_id, need):
                # another consumer drained the row after validation
                session.refresh(stock[equipment_id])
                raise InsufficientInventory(
                    names.get(equipment_id, str(equipment_id)), stock[equipment_id].quantity, need
                )

        for line in lines:
            session.add(
                EquipmentLog(
                    equipment_id=line.equipment_id,
                    user_id=user.id,
                    usage_log_id=usage.id,
                    quantity=-line.quantity,
                    type=EquipmentLogType.USED,
                    notes=line.note,
                )
            )
        session.commit()
    except InsufficientInventory as e:
        session.rollback()
        logger.warning(
            "usage_rejected",
            assembly_id=data.assembly_id,
            user_id=user.id,
            equipment=e.equipment_name,
            available=e.available,
            requested=e.requested,
        )
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(usage)
    logger.info(
        "usage_recorded",
        usage_id=usage.id,
        assembly_id=usage.assembly_id,
        user_id=user.id,
        multiplier=usage.quantity,
        lines=len(lines),
    )
    return usage


# ---- usage deletion ----

def restoration_lines(session: Session, usage: AssemblyUsageLog) -> list[Line]:
    """What deleting ``usage`` gives back to inventory.

    Linked USED log entries are authoritative; older usage rows without links
    fall back to the assembly definition times the multiplier plus modifiers.
    """
    assembly_name = usage.assembly.name if usage.assembly else str(usage.assembly_id)
    note = f"Restored from deleted usage: {assembly_name}"

    linked = session.exec(
        select(EquipmentLog)
        .where(EquipmentLog.usage_log_id == usage.id, EquipmentLog.type == EquipmentLogType.USED)
        .order_by(EquipmentLog.id)
    ).all()
    if linked:
        return [Line(entry.equipment_id, abs(entry.quantity), note) for entry in linked]

    lines = []
    if usage.assembly:
        lines.extend(
            Line(item.equipment_id, item.quantity * usage.quantity, note) for item in usage.assembly.items
        )
    lines.extend(Line(mod.equipment_id, mod.quantity, note) for mod in usage.modifiers)
    return lines


def delete_usage(
    session: Session, user: User, usage_id: int, *, today: Optional[date] = None
) -> list[Line]:
    try:
        usage = session.get(AssemblyUsageLog, usage_id)
        if not usage:
            raise NotFound("Usage log not found")
        authorize(
            user,
            "usage:delete",
            usage,
            message="You can only delete your own usage logs from today",
            today=today,
        )

        lines = [line for line in restoration_lines(session, usage) if line.quantity > 0]
        totals = _sum_by_equipment(lines)
        stock = _lock_inventory(session, totals.keys())

        for equipment_id, qty in totals.items():
            _increment(session, equipment_id, qty, stock)

        for line in lines:
            session.add(
                EquipmentLog(
                    equipment_id=line.equipment_id,
                    user_id=user.id,
                    quantity=line.quantity,
                    type=EquipmentLogType.ADJUSTED,
                    notes=line.note,
                )
            )

        # audit entries outlive the usage row
        session.exec(
            update(EquipmentLog).where(EquipmentLog.usage_log_id == usage.id).values(usage_log_id=None)
        )
        session.flush()
        session.delete(usage)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info("usage_deleted", usage_id=usage_id, user_id=user.id, restored_lines=len(lines))
    return lines
