from typing import Literal

from pydantic import BaseModel

EntryKind = Literal["supplier", "product"]


class RegistryEntry(BaseModel):
    id: str
    kind: EntryKind
    name: str
    identifying_key: str
    address: str | None = None
    unit: str | None = None
    price: float | None = None
    aliases: list[str] = []
    created_at: str | None = None


class SupplierFields(BaseModel):
    """User-confirmed supplier data (usually prefilled from the extraction)"""
    name: str = ""
    tax_id: str = ""
    address: str = ""


class ProductFields(BaseModel):
    code: int | str = ""
    description: str = ""
    price: float = 0.0
    unit: str = ""
