import datetime as dt
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from crewkit.models import AssemblyStatus, EquipmentLogType, Role, UnitType

T = TypeVar("T")

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ---- pagination ----

class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_more: bool


class Page(CamelModel, Generic[T]):
    data: list[T]
    pagination: Optional[Pagination] = None


# ---- users / teams ----

class TeamRef(CamelModel):
    id: int
    name: str


class UserRef(CamelModel):
    id: int
    name: Optional[str] = None
    email: str


class UserBrief(UserRef):
    role: Role


class UserRead(CamelModel):
    id: int
    email: str
    name: Optional[str] = None
    role: Role
    team_id: Optional[int] = None
    team: Optional[TeamRef] = None
    created_at: dt.datetime


class UserCreate(CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=100)
    role: Role = Role.FIELD
    team_id: Optional[int] = None


class UserUpdate(CamelModel):
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    password: Optional[str] = Field(default=None, min_length=8, max_length=100)
    role: Optional[Role] = None
    team_id: Optional[int] = None


class TeamCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Team name is required")
        return v


class TeamUpdate(TeamCreate):
    pass


class TeamMembersUpdate(CamelModel):
    member_ids: list[int]


class TeamRead(CamelModel):
    id: int
    name: str
    creator_id: Optional[int] = None
    created_at: dt.datetime
    members: list[UserBrief] = []


# ---- equipment / inventory ----

class EquipmentBrief(CamelModel):
    id: int
    name: str
    sku: str
    price_per_unit: float
    unit_type: UnitType
    photo_url: Optional[str] = None


class StockLevel(CamelModel):
    quantity: int
    updated_at: dt.datetime


class EquipmentRead(EquipmentBrief):
    description: Optional[str] = None
    is_archived: bool
    boxhero_id: Optional[int] = None
    last_synced_at: Optional[dt.datetime] = None
    inventory: Optional[StockLevel] = None


class InventoryRead(CamelModel):
    id: int
    equipment_id: int
    quantity: int
    updated_at: dt.datetime
    equipment: EquipmentBrief


class StockStatus(str, Enum):
    in_stock = "in_stock"
    low_stock = "low_stock"
    out_of_stock = "out_of_stock"


class InventorySummary(CamelModel):
    total: int
    in_stock: int
    low_stock: int
    out_of_stock: int


class InventoryPage(Page[InventoryRead]):
    summary: InventorySummary
    unit_types: list[UnitType]


class InventoryAction(str, Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"
    USED = "USED"
    RETURNED = "RETURNED"
    SET = "SET"


class InventoryAdjust(CamelModel):
    equipment_id: int
    type: InventoryAction = InventoryAction.ADD
    quantity: int = Field(..., ge=0, le=1_000_000, description="ADD/REMOVE/USED/RETURNED: amount (>0); SET: target stock (>=0)")
    notes: Optional[str] = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"equipmentId": 1, "type": "ADD", "quantity": 50, "notes": "Truck restock"},
                {"equipmentId": 1, "type": "REMOVE", "quantity": 3},
                {"equipmentId": 1, "type": "SET", "quantity": 0, "notes": "Cycle count"},
            ]
        }
    }


class EquipmentLogRead(CamelModel):
    id: int
    equipment_id: int
    user_id: int
    usage_log_id: Optional[int] = None
    quantity: int
    type: EquipmentLogType
    notes: Optional[str] = None
    date: dt.datetime


# ---- assemblies ----

class AssemblyItemIn(CamelModel):
    equipment_id: int
    quantity: int = Field(ge=1)


class AssemblyItemRead(CamelModel):
    id: int
    equipment_id: int
    quantity: int
    equipment: EquipmentBrief


class AssemblyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    items: list[AssemblyItemIn] = Field(min_length=1)
    categories: list[str] = []
    status: Optional[AssemblyStatus] = None


class AssemblyUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    items: Optional[list[AssemblyItemIn]] = Field(default=None, min_length=1)
    categories: Optional[list[str]] = None
    status: Optional[AssemblyStatus] = None


class AssemblyRead(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    status: AssemblyStatus
    categories: list[str]
    created_by_id: int
    created_at: dt.datetime
    updated_at: dt.datetime
    items: list[AssemblyItemRead]
    created_by: Optional[UserRef] = None


class RecentAssemblyRead(AssemblyRead):
    last_used: dt.datetime
    total_used: int


# ---- usage ----

class ModifierIn(CamelModel):
    equipment_id: int
    quantity: int = Field(ge=1)


class ModifierRead(CamelModel):
    id: int
    equipment_id: int
    quantity: int


class UsageCreate(CamelModel):
    assembly_id: int
    quantity: int = Field(default=1, ge=1)
    modifiers: list[ModifierIn] = []
    date: Optional[dt.datetime] = None
    footage: Optional[float] = Field(default=None, ge=0)


class UsageRead(CamelModel):
    id: int
    assembly_id: int
    user_id: int
    quantity: int
    footage: Optional[float] = None
    date: dt.datetime
    created_at: dt.datetime
    modifiers: list[ModifierRead] = []


class UsageDetail(UsageRead):
    assembly: AssemblyRead
    user: UserRef


class UsageSummary(CamelModel):
    total_assemblies: int
    total_items: int
    total_cost: float
    log_count: int


class TodayUsage(CamelModel):
    logs: list[UsageDetail]
    summary: UsageSummary


# ---- metrics / dashboard ----

class MetricsPeriod(str, Enum):
    day = "day"
    week = "week"
    month = "month"
    all = "all"


class EquipmentUsageStat(CamelModel):
    equipment_id: int
    equipment_name: str
    total_used: int
    usage_count: int
    cost: float


class AssemblyUsageStat(CamelModel):
    assembly_id: int
    assembly_name: str
    total_used: int
    usage_count: int


class MetricsRead(CamelModel):
    period: MetricsPeriod
    start_date: dt.datetime
    end_date: dt.datetime
    equipment_usage: list[EquipmentUsageStat]
    assembly_usage: list[AssemblyUsageStat]
    total_cost: float
    avg_cost_per_day: float
    most_common: list[EquipmentUsageStat]
    most_expensive: list[EquipmentUsageStat]
    total_equipment_types: int
    total_assemblies: int


class SystemCounts(CamelModel):
    users: int
    teams: int
    equipment: int
    assemblies: int
    pending_assemblies: int
    low_stock: int
    out_of_stock: int


class DashboardRead(CamelModel):
    month: str
    today_cost: float
    today_usage_count: int
    current_month_cost: float
    previous_month_cost: float
    cost_change_percent: Optional[float] = None
    recent_usage: list[UsageDetail]
    counts: SystemCounts


# ---- end-of-day reports ----

class EodCreate(CamelModel):
    date: Optional[dt.date] = None
    team_id: Optional[int] = None
    workers_present: list[int]
    total_assemblies_used: Optional[int] = Field(default=None, ge=0)
    total_items_consumed: Optional[int] = Field(default=None, ge=0)
    total_fiber_footage: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=2000)
    issues: Optional[str] = Field(default=None, max_length=2000)


class EodRead(CamelModel):
    id: int
    date: dt.date
    team_id: int
    created_by_id: int
    workers_present: list[int]
    total_assemblies_used: int
    total_items_consumed: int
    total_fiber_footage: Optional[float] = None
    notes: Optional[str] = None
    issues: Optional[str] = None
    created_at: dt.datetime
    team: Optional[TeamRef] = None
    created_by: Optional[UserRef] = None
    workers: list[UserRef] = []


class WorkerUsage(CamelModel):
    user: UserRef
    has_activity: bool
    total_assemblies: int
    total_items: int
    logs: list[UsageRead]


class EodDetail(EodRead):
    usage_by_worker: list[WorkerUsage]


class EodTotals(CamelModel):
    assemblies_used: int
    items_consumed: int
    fiber_footage: Optional[float] = None


class EodSummary(CamelModel):
    date: dt.date
    team_id: Optional[int] = None
    team_members: list[UserBrief]
    usage_by_worker: list[WorkerUsage]
    totals: EodTotals
    report_exists: bool
    existing_report_id: Optional[int] = None


# ---- field work logs ----

class FieldLogRead(CamelModel):
    id: int
    date: dt.date
    location: str
    workers_names: list[str]
    worker_count: int
    hours_worked: float
    strand_hung_footage: Optional[float] = None
    poles_attached: Optional[int] = None
    fiber_lashed_footage: Optional[float] = None
    fiber_pulled_footage: Optional[float] = None
    drilled_footage: Optional[float] = None
    plowed_footage: Optional[float] = None
    trenched_footage: Optional[float] = None
    conduit_placed_footage: Optional[float] = None
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
    submitted_by: str
    original_timestamp: Optional[dt.datetime] = None
    created_at: dt.datetime


class AerialTotals(CamelModel):
    strand_hung_footage: float
    poles_attached: int
    fiber_lashed_footage: float


class UndergroundTotals(CamelModel):
    fiber_pulled_footage: float
    drilled_footage: float
    plowed_footage: float
    trenched_footage: float
    conduit_placed_footage: float


class InfrastructureTotals(CamelModel):
    handholes_placed: int
    vaults_placed: int
    msts_installed: int
    guys_placed: int
    slack_loops: int
    risers_installed: int
    splice_cases: int
    anchors_placed: int
    snowshoes_placed: int


class FieldLogSummary(CamelModel):
    total_logs: int
    total_hours_worked: float
    unique_workers: int
    aerial: AerialTotals
    underground: UndergroundTotals
    infrastructure: InfrastructureTotals


class NameCount(CamelModel):
    name: str
    count: int


class FieldLogReport(CamelModel):
    """``logs`` and ``pagination`` are omitted (null) for aggregate-only requests."""

    logs: Optional[list[FieldLogRead]] = None
    pagination: Optional[Pagination] = None
    summary: FieldLogSummary
    locations: list[NameCount]
    submitters: list[NameCount]


# spreadsheet cells arrive as numbers or text ("1,200", "Na")
Cell = Optional[Union[float, str]]


class FieldLogRow(CamelModel):
    location: Optional[str] = None
    workers: Optional[str] = None
    worker_count: Cell = None
    hours_worked: Cell = None
    strand_hung_footage: Cell = None
    poles_attached: Cell = None
    fiber_lashed_footage: Cell = None
    fiber_pulled_footage: Cell = None
    drilled_footage: Cell = None
    plowed_footage: Cell = None
    trenched_footage: Cell = None
    conduit_placed_footage: Cell = None
    handholes_placed: Cell = None
    vaults_placed: Cell = None
    msts_installed: Cell = None
    guys_placed: Cell = None
    slack_loops: Cell = None
    risers_installed: Cell = None
    splice_cases: Cell = None
    anchors_placed: Cell = None
    snowshoes_placed: Cell = None
    notes: Optional[str] = None
    submitted_by: Optional[str] = None
    timestamp: Optional[str] = None


class FieldLogImport(CamelModel):
    rows: list[FieldLogRow]


class ImportResult(CamelModel):
    success: bool = True
    imported: int
    skipped: int
    errors: list[str]


# ---- settings ----

class SettingsRead(CamelModel):
    company_name: str
    updated_by_id: Optional[int] = None
    updated_at: dt.datetime


class SettingsUpdate(CamelModel):
    company_name: str = Field(min_length=1, max_length=50)

    @field_validator("company_name")
    @classmethod
    def strip_company_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Company name is required")
        return v


# ---- boxhero ----

class SyncResultRead(CamelModel):
    success: bool
    created: int
    updated: int
    archived: int
    errors: list[str]
    synced_at: dt.datetime


class SyncStatsRead(CamelModel):
    total_equipment: int
    synced_from_boxhero: int
    archived_count: int
    last_synced_at: Optional[dt.datetime] = None


class LocationQuantity(CamelModel):
    location_id: int
    location_name: Optional[str] = None
    quantity: int


class BoxHeroItemRead(CamelModel):
    boxhero_id: int
    name: str
    sku: str
    description: Optional[str] = None
    price_per_unit: float
    unit_type: UnitType
    quantity: int
    photo_url: Optional[str] = None
    quantities: list[LocationQuantity] = []


class BoxHeroLocationRead(CamelModel):
    id: int
    name: str
