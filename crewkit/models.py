import datetime as dt
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

from crewkit.services.clock import utcnow


class Role(str, Enum):
    FIELD = "FIELD"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPERUSER = "SUPERUSER"


class AssemblyStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UnitType(str, Enum):
    UNIT = "UNIT"
    BOX = "BOX"
    CASE = "CASE"
    PALLET = "PALLET"
    FOOT = "FOOT"
    YARD = "YARD"
    POUND = "POUND"
    OTHER = "OTHER"


class EquipmentLogType(str, Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"
    USED = "USED"
    RETURNED = "RETURNED"
    ADJUSTED = "ADJUSTED"


class Team(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    # plain column: user.team_id already points this way
    creator_id: Optional[int] = Field(default=None, index=True)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    members: list["User"] = Relationship(back_populates="team")


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: Optional[str] = None
    password_hash: str
    role: Role = Field(default=Role.FIELD, index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    team: Optional[Team] = Relationship(back_populates="members")


class Equipment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    sku: str = Field(index=True, unique=True)
    description: Optional[str] = None
    price_per_unit: float = Field(default=0)
    unit_type: UnitType = Field(default=UnitType.UNIT)
    is_archived: bool = Field(default=False, index=True)
    photo_url: Optional[str] = None
    boxhero_id: Optional[int] = Field(default=None, index=True, unique=True)
    last_synced_at: Optional[dt.datetime] = Field(default=None, sa_type=DateTime)

    inventory: Optional["Inventory"] = Relationship(
        back_populates="equipment",
        sa_relationship_kwargs={"uselist": False},
    )


class Inventory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: int = Field(foreign_key="equipment.id", unique=True, index=True)
    quantity: int = Field(default=0)
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    equipment: Optional[Equipment] = Relationship(back_populates="inventory")


class AssemblyItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    assembly_id: int = Field(foreign_key="assembly.id", index=True)
    equipment_id: int = Field(foreign_key="equipment.id", index=True)
    quantity: int = Field(default=1)

    assembly: Optional["Assembly"] = Relationship(back_populates="items")
    equipment: Optional[Equipment] = Relationship()


class Assembly(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    status: AssemblyStatus = Field(default=AssemblyStatus.DRAFT, index=True)
    categories: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_by_id: int = Field(foreign_key="user.id", index=True)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    items: list[AssemblyItem] = Relationship(
        back_populates="assembly",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "AssemblyItem.id"},
    )
    created_by: Optional[User] = Relationship()


class UsageModifier(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    usage_log_id: int = Field(foreign_key="assemblyusagelog.id", index=True)
    equipment_id: int = Field(foreign_key="equipment.id")
    quantity: int

    usage_log: Optional["AssemblyUsageLog"] = Relationship(back_populates="modifiers")


class AssemblyUsageLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    assembly_id: int = Field(foreign_key="assembly.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    quantity: int = Field(default=1)
    footage: Optional[float] = None
    date: dt.datetime = Field(default_factory=utcnow, index=True, sa_type=DateTime)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    modifiers: list[UsageModifier] = Relationship(
        back_populates="usage_log",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "UsageModifier.id"},
    )
    assembly: Optional[Assembly] = Relationship()
    user: Optional[User] = Relationship()


class EquipmentLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: int = Field(foreign_key="equipment.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    # set for entries written by the usage ledger, cleared when the usage log is deleted
    usage_log_id: Optional[int] = Field(default=None, foreign_key="assemblyusagelog.id", index=True)
    quantity: int                     # signed: -6 used / +6 restored
    type: EquipmentLogType = Field(index=True)
    notes: Optional[str] = None
    date: dt.datetime = Field(default_factory=utcnow, index=True, sa_type=DateTime)


class EndOfDayReport(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("date", "team_id", name="uq_eod_date_team"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    created_by_id: int = Field(foreign_key="user.id")
    workers_present: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    total_assemblies_used: int = 0
    total_items_consumed: int = 0
    total_fiber_footage: Optional[float] = None
    notes: Optional[str] = None
    issues: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)

    team: Optional[Team] = Relationship()
    created_by: Optional[User] = Relationship()


class SystemSettings(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    company_name: str = "CrewKit"
    updated_by_id: Optional[int] = Field(default=None, foreign_key="user.id")
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)


class FieldWorkLog(SQLModel, table=True):
    """Crew production log imported from the field spreadsheet."""

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    location: str = Field(index=True)
    workers_names: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    worker_count: int = 0
    hours_worked: float = 0

    # aerial
    strand_hung_footage: Optional[float] = None
    poles_attached: Optional[int] = None
    fiber_lashed_footage: Optional[float] = None
    # underground
    fiber_pulled_footage: Optional[float] = None
    drilled_footage: Optional[float] = None
    plowed_footage: Optional[float] = None
    trenched_footage: Optional[float] = None
    conduit_placed_footage: Optional[float] = None
    # infrastructure
    handholes_placed: Optional[int] = None
    vaults_placed: Optional[int] = None
    msts_installed: Optional[int] = None
    guys_placed: Optional[int] = None
    slack_loops: Optional[int] = None
    risers_installed: Optional[int] = None
    splice_cases: Optional[int] = None
    anchors_placed: Optional[int] = None
    snowshoes_placed: Optional[int] = None

    notes: Optional[str] = None
    submitted_by: str = Field(default="Unknown", index=True)
    original_timestamp: Optional[dt.datetime] = Field(default=None, sa_type=DateTime)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime)
