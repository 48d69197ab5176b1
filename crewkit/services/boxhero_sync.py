"""
BoxHero sync.
One-way: BoxHero is the source of truth for the equipment catalog and stock.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func
from sqlmodel import Session, select

from crewkit.models import Equipment, EquipmentLog, EquipmentLogType, Inventory, UnitType, User
from crewkit.services import clock
from crewkit.services.boxhero import BoxHeroClient, normalize_item

logger = structlog.get_logger(__name__)


def _apply_fields(equipment: Equipment, data: dict, now: datetime) -> None:
    equipment.name = data["name"]
    equipment.description = data["description"]
    equipment.price_per_unit = data["price_per_unit"]
    equipment.unit_type = UnitType(data["unit_type"])
    equipment.photo_url = data["photo_url"]
    equipment.boxhero_id = data["boxhero_id"]
    equipment.last_synced_at = now
    equipment.is_archived = False


def _set_stock(session: Session, equipment: Equipment, quantity: int, user: User, now: datetime) -> None:
    inv = equipment.inventory
    if inv is None:
        session.add(Inventory(equipment_id=equipment.id, quantity=quantity, updated_at=now))
        if quantity:
            session.add(
                EquipmentLog(
                    equipment_id=equipment.id,
                    user_id=user.id,
                    quantity=quantity,
                    type=EquipmentLogType.ADD,
                    notes="Initial stock from BoxHero sync",
                )
            )
        return

    delta = quantity - inv.quantity
    if delta == 0:
        return
    session.add(
        EquipmentLog(
            equipment_id=equipment.id,
            user_id=user.id,
            quantity=delta,
            type=EquipmentLogType.ADJUSTED,
            notes=f"BoxHero sync ({inv.quantity}->{quantity})",
        )
    )
    inv.quantity = quantity
    inv.updated_at = now
    session.add(inv)


def sync_from_boxhero(session: Session, client: BoxHeroClient, user: User) -> dict:
    """Upsert equipment and stock from BoxHero, archiving what BoxHero no longer has.

    Fetch failures propagate. Per-item failures are collected in ``errors``
    and the rest of the catalog is still applied.
    """
    now = clock.utcnow()
    result = {"success": False, "created": 0, "updated": 0, "archived": 0, "errors": [], "synced_at": now}

    items = client.get_items()
    logger.info("boxhero_sync_started", items=len(items), user_id=user.id)

    existing = {
        e.boxhero_id: e
        for e in session.exec(select(Equipment).where(Equipment.boxhero_id.is_not(None))).all()
    }
    skus = set(session.exec(select(Equipment.sku)).all())
    seen: set[int] = set()

    try:
        for item in items:
            item_id = item.get("id")
            if item_id is None or item_id in seen:
                continue
            try:
                data = normalize_item(item)
                UnitType(data["unit_type"])
            except (KeyError, TypeError, ValueError) as e:
                msg = f"Failed to process item {item_id} ({item.get('name')}): {e}"
                logger.warning("boxhero_sync_item_failed", item_id=item_id, error=str(e))
                result["errors"].append(msg)
                continue

            equipment = existing.get(item_id)
            if equipment is not None:
                _apply_fields(equipment, data, now)
                session.add(equipment)
                result["updated"] += 1
            else:
                sku = data["sku"]
                if sku in skus:
                    sku = f"{sku}-BH{item_id}"
                equipment = Equipment(sku=sku, name=data["name"])
                _apply_fields(equipment, data, now)
                session.add(equipment)
                session.flush()
                skus.add(sku)
                result["created"] += 1
            _set_stock(session, equipment, data["quantity"], user, now)
            seen.add(item_id)

        for boxhero_id, equipment in existing.items():
            if boxhero_id not in seen and not equipment.is_archived:
                equipment.is_archived = True
                equipment.last_synced_at = now
                session.add(equipment)
                result["archived"] += 1

        legacy = session.exec(
            select(Equipment).where(Equipment.boxhero_id.is_(None), Equipment.is_archived == False)  # noqa: E712
        ).all()
        for equipment in legacy:
            equipment.is_archived = True
            session.add(equipment)
        result["archived"] += len(legacy)

        session.commit()
    except Exception:
        session.rollback()
        raise

    result["success"] = True
    logger.info(
        "boxhero_sync_completed",
        created=result["created"],
        updated=result["updated"],
        archived=result["archived"],
        errors=len(result["errors"]),
    )
    return result


def last_sync_time(session: Session) -> Optional[datetime]:
    return session.exec(select(func.max(Equipment.last_synced_at))).one()


def get_sync_stats(session: Session) -> dict:
    def count(*conds) -> int:
        return session.exec(select(func.count()).select_from(Equipment).where(*conds)).one()

    return {
        "total_equipment": count(Equipment.is_archived == False),  # noqa: E712
        "synced_from_boxhero": count(Equipment.boxhero_id.is_not(None), Equipment.is_archived == False),  # noqa: E712
        "archived_count": count(Equipment.is_archived == True),  # noqa: E712
        "last_synced_at": last_sync_time(session),
    }
