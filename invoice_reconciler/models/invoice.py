"""
Normalized invoice models.

An Invoice is rebuilt from the extraction source on every fetch and never
persisted here. Registration flags are derived by the registration gate;
the normalizer always leaves them False.
"""

from datetime import date
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field, computed_field

from ..core.config import settings

T = TypeVar("T")


def confidence_level(confidence: int) -> Literal["high", "medium", "low"]:
    """Map a 0-100 confidence onto the display band used by the review screen"""
    if confidence >= settings.confidence_high_threshold:
        return "high"
    if confidence >= settings.confidence_medium_threshold:
        return "medium"
    return "low"


class ExtractedField(BaseModel, Generic[T]):
    value: T
    confidence: int = Field(default=0, ge=0, le=100)

    @computed_field
    @property
    def level(self) -> str:
        return confidence_level(self.confidence)


class FieldConsistencyWarning(BaseModel):
    """Extracted values that disagree arithmetically (non-fatal)"""
    field: str
    expected: float
    actual: float
    message: str


class Merchant(BaseModel):
    name: ExtractedField[str]
    tax_id: ExtractedField[str] = Field(default_factory=lambda: ExtractedField[str](value=""))
    address: ExtractedField[str] = Field(default_factory=lambda: ExtractedField[str](value=""))
    is_registered: bool = False


class LineItem(BaseModel):
    code: ExtractedField[int]
    description: ExtractedField[str]
    quantity: ExtractedField[float]
    unit_price: ExtractedField[float]
    total_price: ExtractedField[float]
    unit: ExtractedField[str]
    is_registered: bool = False


class Invoice(BaseModel):
    id: str
    confidence: int = Field(default=0, ge=0, le=100)
    merchant: Merchant
    items: list[LineItem] = []
    total: ExtractedField[float]
    tax: ExtractedField[float] = Field(default_factory=lambda: ExtractedField[float](value=0.0))
    transaction_date: ExtractedField[date]
    is_registered: bool = False
    warnings: list[FieldConsistencyWarning] = []
    gate_errors: list[str] = []

    @computed_field
    @property
    def pending_registrations(self) -> list[str]:
        """Entities still missing from the registry, as field paths"""
        pending = []
        if not self.merchant.is_registered:
            pending.append("merchant")
        for index, item in enumerate(self.items):
            if not item.is_registered:
                pending.append(f"items[{index}]")
        return pending


class InvoiceFailure(BaseModel):
    """A pending invoice that could not be normalized"""
    invoice_id: str | None = None
    error: str
    field: str | None = None
    message: str


class PendingBatch(BaseModel):
    invoices: list[Invoice] = []
    failures: list[InvoiceFailure] = []


class InvoiceDecision(BaseModel):
    invoice_id: str
    status: Literal["processed", "rejected"]
    reason: str | None = None
    decided_at: str
    decided_by: str = "user"
