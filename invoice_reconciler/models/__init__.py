from .invoice import (
    ExtractedField,
    FieldConsistencyWarning,
    Invoice,
    InvoiceDecision,
    InvoiceFailure,
    LineItem,
    Merchant,
    PendingBatch,
    confidence_level,
)
from .registry import EntryKind, ProductFields, RegistryEntry, SupplierFields
