"""
SSOT (Single Source of Truth) schemas for the pipeline.

Transactions as the assistant returns them, the header/detail rows they
are grouped into, and the typed results passed between pipeline stages.
"""

from .results import (
    BatchResult,
    Chunk,
    ChunkOutcome,
    ErrorKind,
    ExtractionCallResult,
    ProcessResult,
)
from .transactions import (
    DEFAULT_PAYMENT_TYPE_ID,
    TYPE_ADJUSTMENT_PAYMENTS,
    AmountFormatError,
    CustomColor,
    LedgerRow,
    RawTransaction,
    TransactionDetail,
    TransactionHeader,
    format_amount,
    parse_amount,
)

__all__ = [
    # Transactions (assistant output and ledger rows)
    "RawTransaction",
    "TransactionHeader",
    "TransactionDetail",
    "CustomColor",
    "LedgerRow",
    "AmountFormatError",
    "parse_amount",
    "format_amount",
    "DEFAULT_PAYMENT_TYPE_ID",
    "TYPE_ADJUSTMENT_PAYMENTS",
    # Pipeline results
    "Chunk",
    "ChunkOutcome",
    "ErrorKind",
    "ExtractionCallResult",
    "BatchResult",
    "ProcessResult",
]
