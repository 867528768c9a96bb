"""Tests for check-number grouping and flattening."""

from decimal import Decimal

from office_ingest.pipeline.grouping import extract_rows, flatten_groups, group_by_check
from office_ingest.schemas import RawTransaction, TransactionDetail, TransactionHeader

from .conftest import fenced


def txn(check, amount=None, check_amount=None, **kwargs) -> RawTransaction:
    return RawTransaction(
        check_number=check,
        posted_amount=Decimal(amount) if amount is not None else None,
        check_amount=Decimal(check_amount) if check_amount is not None else None,
        **kwargs,
    )


class TestGroupByCheck:
    """Tests for group_by_check()."""

    def test_groups_in_first_seen_order(self):
        headers = group_by_check([txn("B", "1"), txn("A", "2"), txn("B", "3")])

        assert [h.check_number for h in headers] == ["B", "A"]
        assert [d.amount for d in headers[0].details] == [Decimal("1"), Decimal("3")]

    def test_records_without_check_number_dropped(self):
        headers = group_by_check([txn(None, "1"), txn("", "2"), txn("  ", "3"), txn("A", "4")])
        assert [h.check_number for h in headers] == ["A"]

    def test_header_fields_from_first_record(self):
        headers = group_by_check(
            [
                txn("A", "1", insurance_company="Aetna", payment_type="EFT"),
                txn("A", "2", insurance_company="Other", payment_type="Check"),
            ]
        )
        assert headers[0].insurance == "Aetna"
        assert headers[0].payment_type_name == "EFT"

    def test_detail_fields(self):
        headers = group_by_check(
            [txn("A", "10", patient_name="John", code="99213", service_date="2024-01-15")]
        )
        detail = headers[0].details[0]

        assert detail.patient_name == "John"
        assert detail.flash_report_note == "99213"
        assert detail.tipology_service_date == "2024-01-15"
        assert detail.sub_order_in_list == 1

    def test_amount_falls_back_to_check_amount(self):
        headers = group_by_check([txn("A", None, check_amount="75.5")])
        assert headers[0].details[0].amount == Decimal("75.5")
        assert headers[0].amount == "75.50"


class TestFlattenGroups:
    """Tests for flatten_groups()."""

    def test_header_followed_by_details(self):
        rows = flatten_groups(group_by_check([txn("A", "1"), txn("B", "2"), txn("A", "3")]))

        kinds = [type(r).__name__ for r in rows]
        assert kinds == [
            "TransactionHeader",
            "TransactionDetail",
            "TransactionDetail",
            "TransactionHeader",
            "TransactionDetail",
        ]
        assert [rows[0].order_in_list, rows[3].order_in_list] == [1, 2]

    def test_totals_and_last_row(self):
        rows = flatten_groups(group_by_check([txn("A", "100"), txn("A", "50.255")]))
        header = rows[0]

        assert header.amount == "150.26"
        assert header.claim_number == 2
        assert [d.sub_order_in_list for d in header.details] == [1, 2]
        assert [d.last_row for d in header.details] == [False, True]

    def test_recompute_after_edit(self):
        headers = group_by_check([txn("A", "1")])
        headers[0].details.append(TransactionDetail(check_number="A", amount=Decimal("4")))

        flatten_groups(headers)

        assert headers[0].amount == "5.00"
        assert headers[0].details[0].last_row is False
        assert headers[0].details[1].last_row is True

    def test_empty(self):
        assert flatten_groups([]) == []


class TestSerialization:
    """Tests for the camelCase row shape."""

    def test_header_to_dict(self, sample_transactions):
        rows = extract_rows(fenced(sample_transactions))
        header = rows[0].to_dict()

        assert header["checkNumber"] == "100234"
        assert header["insurance"] == "Aetna"
        assert header["amount"] == "150.00"
        assert header["claimNumber"] == 2
        assert header["typeAdjusment"] == "payments"
        assert header["paymentTypeId"] == 1002
        assert header["customColor"] == {"background": "#FFFFFF", "foreground": "#000000"}
        assert header["orderInList"] == 1
        assert header["isActive"] is True
        assert len(header["details"]) == 2

    def test_detail_to_dict(self, sample_transactions):
        detail = extract_rows(fenced(sample_transactions))[2].to_dict()

        assert detail["patientName"] == "Mary Roe"
        assert detail["subOrderInList"] == 2
        assert detail["lastRow"] is True
        assert detail["showRow"] is True
        assert detail["verify"] is False
        assert detail["cpdpId"] == 0

    def test_rows_are_typed(self, sample_transactions):
        rows = extract_rows(fenced(sample_transactions))
        assert isinstance(rows[0], TransactionHeader)
        assert all(isinstance(r, TransactionDetail) for r in rows[1:])
