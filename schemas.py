"""
Record Schemas for Bar Management

Each stored Pydantic model maps to a collection of the persistence layer
(see database.py): Article -> "articles", Table -> "tables",
Payment -> "payments", Employee -> "employees", ActivityLog -> "activity_logs".

Stored records carry a schema_version. Older shapes (camelCase keys written by
the first web client, single-price articles) are upgraded when they are read.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SCHEMA_VERSION = 2

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


class Mode(str, Enum):
    BAR = "bar"
    SNACKBAR = "snackbar"


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"


MODE_LABELS = {
    Mode.BAR: "Bar",
    Mode.SNACKBAR: "Snackbar",
}

WORK_MODE_LABELS = {
    Mode.BAR: "Bar - Journée",
    Mode.SNACKBAR: "Snackbar - Soirée",
}


def snake_keys(data: dict) -> dict:
    return {_CAMEL.sub("_", k).lower() if k != "_id" else k: v for k, v in data.items()}


def local_naive(value: datetime) -> datetime:
    """Legacy records carry UTC "Z" timestamps; everything else is local time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class StoredRecord(BaseModel):
    """Base for everything written to a collection."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(None, description="Store-assigned identifier")
    schema_version: int = Field(SCHEMA_VERSION, description="Record layout version")

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = snake_keys(data)
        if "_id" in data and "id" not in data:
            data["id"] = str(data.pop("_id"))
        data = cls.migrate(data)
        data["schema_version"] = SCHEMA_VERSION
        return data

    @classmethod
    def migrate(cls, data: dict) -> dict:
        return data

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"})


class Article(StoredRecord):
    """
    Sellable catalog item with day ("bar") and evening ("snackbar") prices.
    Collection name: "articles"
    """
    name: str = Field(..., min_length=1, description="Article name")
    category: str = Field("Autres", description="Boissons, Nourriture, Snacks, Autres")
    price_bar: float = Field(0, ge=0, description="Day price")
    price_snackbar: float = Field(0, ge=0, description="Evening price")
    stock: int = Field(0, ge=0, description="Units on hand")
    unit: str = Field("unité", description="bouteille, canette, portion, kg...")

    @classmethod
    def migrate(cls, data: dict) -> dict:
        # version 1 articles had a single price
        price = data.pop("price", None)
        if data.get("price_bar") is None:
            data["price_bar"] = price or 0
        if data.get("price_snackbar") is None:
            data["price_snackbar"] = price * 1.2 if price else 0
        if not data.get("category"):
            data["category"] = "Autres"
        return data


class OrderLine(BaseModel):
    """Line of a table tab (price snapshot captured when first added)."""
    article_id: str = Field(..., description="Referenced article id")
    article_name: str = Field(..., description="Name snapshot")
    quantity: int = Field(..., ge=1, description="Quantity")
    price: float = Field(..., ge=0, description="Unit price snapshot")

    @model_validator(mode="before")
    @classmethod
    def snake_case_keys(cls, data: Any) -> Any:
        return snake_keys(data) if isinstance(data, dict) else data

    @property
    def line_total(self) -> float:
        return self.quantity * self.price


class Table(StoredRecord):
    """
    A tab: occupied while it holds unpaid order lines.
    Collection name: "tables"
    """
    name: str = Field(..., min_length=1, description="Table name, e.g. Terrasse 1")
    status: TableStatus = Field(TableStatus.AVAILABLE)
    orders: List[OrderLine] = Field(default_factory=list)
    total: float = Field(0, ge=0, description="Sum of quantity * price over orders")


class Payment(StoredRecord):
    """
    Settled tab. Never modified once written.
    Collection name: "payments"
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    table_name: str
    amount: float = Field(..., ge=0)
    items: List[OrderLine] = Field(default_factory=list)
    mode: Mode = Field(Mode.BAR)
    recorded_by: str = Field("unknown", description="Role or employee id")
    date: datetime = Field(default_factory=datetime.now)

    @field_validator("date")
    @classmethod
    def date_local(cls, value: datetime) -> datetime:
        return local_naive(value)


class Employee(StoredRecord):
    """
    Waiter account authenticated by a 6 digit code.
    Collection name: "employees"
    """
    name: str = Field(..., min_length=1)
    code: str = Field(..., description="6 digit access code (plain text)")
    work_mode: Mode = Field(Mode.BAR)
    created_by: str = Field("unknown")
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("created_at")
    @classmethod
    def created_at_local(cls, value: datetime) -> datetime:
        return local_naive(value)


class ActivityLog(StoredRecord):
    """
    Audit trail entry.
    Collection name: "activity_logs"
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    role: str
    timestamp: datetime = Field(default_factory=datetime.now)
    action: str
    details: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_local(cls, value: datetime) -> datetime:
        return local_naive(value)


# ----------------------------
# Request payloads
# ----------------------------
class ArticleCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = "Autres"
    price_bar: float = Field(..., ge=0)
    price_snackbar: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    unit: str = "unité"


class ArticleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    price_bar: Optional[float] = Field(None, ge=0)
    price_snackbar: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None


class TableCreate(BaseModel):
    name: str


class OrderLineCreate(BaseModel):
    article_id: str
    quantity: int = Field(1, ge=1)
    mode: Optional[Mode] = Field(None, description="Defaults to the current mode")


class PaymentCreate(BaseModel):
    mode: Optional[Mode] = Field(None, description="Defaults to the current mode")


class EmployeeCreate(BaseModel):
    name: str
    code: str
    work_mode: Mode = Mode.BAR


class LoginRequest(BaseModel):
    role: str = Field(..., description="patron, gerante1, gerante2 or an employee id")
    code: str


class LogoutRequest(BaseModel):
    role: str


class ModeUpdate(BaseModel):
    mode: Mode


class AccessCodeUpdate(BaseModel):
    code: str


class NavigationEvent(BaseModel):
    section: str = Field(..., min_length=1)
