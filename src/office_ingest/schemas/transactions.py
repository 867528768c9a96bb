"""
Canonical transaction schemas (SSOT).

RawTransaction is what the assistant returns for one chunk. It only lives
between parsing and grouping. TransactionHeader and TransactionDetail are
the consolidated ledger rows returned to callers.

Wire names:
- RawTransaction uses the snake_case keys the extraction prompt asks for
- Header/detail rows serialize to camelCase, including the historical
  misspelling "typeAdjusment"
"""

from dataclasses import dataclass, field
from decimal import MAX_PREC, Decimal, InvalidOperation, localcontext
from typing import Any, Optional, Union

TYPE_ADJUSTMENT_PAYMENTS = "payments"
DEFAULT_PAYMENT_TYPE_ID = 1002
TWO_PLACES = Decimal("0.01")


class AmountFormatError(ValueError):
    """Raised when an amount field cannot be read as a number."""

    pass


def parse_amount(value: Any) -> Optional[Decimal]:
    """Coerce a JSON amount (number, numeric string or null) to Decimal.

    Booleans are rejected even though they are ints in Python.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise AmountFormatError(f"Invalid amount: {value!r}")
    if isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation as e:
            raise AmountFormatError(f"Invalid amount: {value!r}") from e
    else:
        raise AmountFormatError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise AmountFormatError(f"Invalid amount: {value!r}")
    return amount


def format_amount(value: Decimal) -> str:
    """Two-decimal fixed formatting used for header totals."""
    # Context precision must cover every integer digit plus the two decimals
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return str(value.quantize(TWO_PLACES))


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class RawTransaction:
    """One record extracted by the assistant."""

    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    insurance_company: Optional[str] = None
    check_amount: Optional[Decimal] = None
    posted_amount: Optional[Decimal] = None
    check_number: Optional[str] = None
    service_date: Optional[str] = None
    code: Optional[str] = None
    other_amount: Optional[Decimal] = None
    payment_type: Optional[str] = None

    @property
    def has_check_number(self) -> bool:
        return bool(self.check_number and self.check_number.strip())

    def detail_amount(self) -> Decimal:
        """Posted amount, falling back to check amount, else zero."""
        if self.posted_amount:
            return self.posted_amount
        if self.check_amount:
            return self.check_amount
        return Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "RawTransaction":
        """Build from one element of the assistant's JSON array.

        Raises:
            AmountFormatError: If an amount field is not numeric
            TypeError: If data is not a mapping
        """
        if not isinstance(data, dict):
            raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
        return cls(
            patient_id=_optional_str(data.get("patient_id")),
            patient_name=_optional_str(data.get("patient_name")),
            insurance_company=_optional_str(data.get("insurance_company")),
            check_amount=parse_amount(data.get("check_amount")),
            posted_amount=parse_amount(data.get("posted_amount")),
            check_number=_optional_str(data.get("check_number")),
            service_date=_optional_str(data.get("service_date")),
            code=_optional_str(data.get("code")),
            other_amount=parse_amount(data.get("other_amount")),
            payment_type=_optional_str(data.get("payment_type")),
        )

    def to_dict(self) -> dict:
        return {
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "insurance_company": self.insurance_company,
            "check_amount": str(self.check_amount) if self.check_amount is not None else None,
            "posted_amount": str(self.posted_amount) if self.posted_amount is not None else None,
            "check_number": self.check_number,
            "service_date": self.service_date,
            "code": self.code,
            "other_amount": str(self.other_amount) if self.other_amount is not None else None,
            "payment_type": self.payment_type,
        }


@dataclass
class CustomColor:
    """Display colors attached to every header."""

    background: str = "#FFFFFF"
    foreground: str = "#000000"

    def to_dict(self) -> dict:
        return {"background": self.background, "foreground": self.foreground}


@dataclass
class TransactionDetail:
    """One line within a check group."""

    check_number: str
    amount: Decimal
    patient_name: Optional[str] = None
    # The procedure code is shown as the flash report note
    flash_report_note: Optional[str] = None
    tipology_service_date: Optional[str] = None
    sub_order_in_list: int = 1
    last_row: bool = False

    # Fixed state flags
    cpdp_id: int = 0
    audit_is_mandatory: bool = False
    audit_done: bool = False
    max_date_penalty: bool = False
    verify: bool = False
    show_row: bool = True
    remove_detail: bool = False

    def to_dict(self) -> dict:
        return {
            "checkNumber": self.check_number,
            "amount": str(self.amount),
            "patientName": self.patient_name,
            "cpdpId": self.cpdp_id,
            "flashReportNote": self.flash_report_note,
            "tipologyServiceDate": self.tipology_service_date,
            "auditIsMandatory": self.audit_is_mandatory,
            "auditDone": self.audit_done,
            "maxDatePenalty": self.max_date_penalty,
            "verify": self.verify,
            "subOrderInList": self.sub_order_in_list,
            "showRow": self.show_row,
            "removeDetail": self.remove_detail,
            "lastRow": self.last_row,
        }


@dataclass
class TransactionHeader:
    """
    One check/payment group.

    The header owns its details. Use add_detail() rather than appending to
    details directly so that amount, claim_number and last_row stay in sync.
    """

    check_number: str
    insurance: Optional[str] = None
    payment_type_name: Optional[str] = None
    order_in_list: int = 0
    details: list[TransactionDetail] = field(default_factory=list)

    # Derived from details (see recompute())
    amount: str = "0.00"
    claim_number: int = 0

    # Fixed display/state fields
    is_active: bool = True
    posted_by_lsi: bool = True
    verify_total_amount: bool = True
    type_adjustment: str = TYPE_ADJUSTMENT_PAYMENTS
    payment_type_id: int = DEFAULT_PAYMENT_TYPE_ID
    custom_color: CustomColor = field(default_factory=CustomColor)
    eft_amount_difference: Decimal = Decimal("0")
    check_amount_difference: Decimal = Decimal("0")

    def add_detail(self, detail: TransactionDetail) -> None:
        self.details.append(detail)
        self.recompute()

    def total(self) -> Decimal:
        # Exact sum, no rounding to the default 28 digits
        with localcontext() as ctx:
            ctx.prec = MAX_PREC
            return sum((d.amount for d in self.details), Decimal("0"))

    def recompute(self) -> None:
        """Refresh derived fields after details change."""
        self.amount = format_amount(self.total())
        self.claim_number = len(self.details)
        last = len(self.details) - 1
        for i, detail in enumerate(self.details):
            detail.last_row = i == last

    def to_dict(self) -> dict:
        return {
            "checkNumber": self.check_number,
            "insurance": self.insurance,
            "amount": self.amount,
            "isActive": self.is_active,
            "postedByLsi": self.posted_by_lsi,
            "verifyTotalAmount": self.verify_total_amount,
            "claimNumber": self.claim_number,
            "customColor": self.custom_color.to_dict(),
            "typeAdjusment": self.type_adjustment,
            "paymentTypeId": self.payment_type_id,
            "paymentTypeName": self.payment_type_name,
            "eftAmountDifference": str(self.eft_amount_difference),
            "checkAmountDifference": str(self.check_amount_difference),
            "orderInList": self.order_in_list,
            "details": [d.to_dict() for d in self.details],
        }


LedgerRow = Union[TransactionHeader, TransactionDetail]
