"""
Check-number grouping and flattening.

Transactions sharing a check number form one header with one detail per
transaction. Groups keep the order in which their check number first
appears; details keep record order. Records without a check number are
dropped.
"""

from collections.abc import Iterable

from ..schemas import LedgerRow, RawTransaction, TransactionDetail, TransactionHeader
from .parser import parse_response


def build_detail(record: RawTransaction, check_number: str, sub_order: int) -> TransactionDetail:
    return TransactionDetail(
        check_number=check_number,
        amount=record.detail_amount(),
        patient_name=record.patient_name,
        flash_report_note=record.code,
        tipology_service_date=record.service_date,
        sub_order_in_list=sub_order,
    )


def group_by_check(transactions: Iterable[RawTransaction]) -> list[TransactionHeader]:
    """
    Group transactions into headers keyed by check number.

    The header's insurance and payment type come from the first record of
    its group. Headers are returned without an order index; see
    flatten_groups().
    """
    groups: dict[str, TransactionHeader] = {}
    for record in transactions:
        if not record.has_check_number:
            continue
        key = record.check_number
        header = groups.get(key)
        if header is None:
            header = TransactionHeader(
                check_number=key,
                insurance=record.insurance_company,
                payment_type_name=record.payment_type,
            )
            groups[key] = header
        header.add_detail(build_detail(record, key, len(header.details) + 1))
    return list(groups.values())


def flatten_groups(headers: Iterable[TransactionHeader]) -> list[LedgerRow]:
    """
    Serialize headers into display order.

    Each header is numbered from 1 and immediately followed by its details.
    Derived header fields are recomputed here so the output is consistent
    even if details were edited after grouping.
    """
    rows: list[LedgerRow] = []
    for order, header in enumerate(headers, start=1):
        header.order_in_list = order
        header.recompute()
        rows.append(header)
        rows.extend(header.details)
    return rows


def extract_rows(response_text: str | None) -> list[LedgerRow]:
    """Parse, group and flatten one chunk's response."""
    return flatten_groups(group_by_check(parse_response(response_text)))
