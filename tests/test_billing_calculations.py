"""Tests for billing arithmetic."""

from datetime import date
from decimal import Decimal

import pytest

from orthodesk.billing import calculations
from orthodesk.billing.calculations import (
    add_months,
    calculate_days_overdue,
    calculate_invoice_totals,
    calculate_payment_plan_amounts,
    generate_payment_link_code,
    get_aging_bucket,
    line_patient_amount,
)


class TestInvoiceTotals:
    def test_lines_with_discount_and_insurance(self):
        items = [
            {"description": "Comprehensive treatment", "quantity": 1, "unit_price": "5500.00",
             "insurance_amount": "1500.00"},
            {"description": "Retainer", "quantity": 2, "unit_price": "150.00", "discount": "25.00"},
        ]
        totals = calculate_invoice_totals(items)
        assert totals == {
            "subtotal": Decimal("5800.00"),
            "adjustments": Decimal("25.00"),
            "insurance": Decimal("1500.00"),
            "patient_amount": Decimal("4275.00"),
            "balance": Decimal("4275.00"),
        }

    def test_explicit_patient_amount_wins(self):
        item = {"quantity": 1, "unit_price": "100.00", "insurance_amount": "20.00", "patient_amount": "50.00"}
        assert line_patient_amount(item) == Decimal("50.00")
        assert calculate_invoice_totals([item])["patient_amount"] == Decimal("50.00")

    def test_accepts_objects(self):
        class Line:
            quantity = 3
            unit_price = Decimal("10.005")
            discount = None
            insurance_amount = None
            patient_amount = None

        totals = calculate_invoice_totals([Line()])
        assert totals["subtotal"] == Decimal("30.02")

    def test_rounds_half_up(self):
        totals = calculate_invoice_totals([{"unit_price": "0.125"}])
        assert totals["patient_amount"] == Decimal("0.13")

    def test_no_items(self):
        assert calculate_invoice_totals([])["balance"] == Decimal("0.00")

    def test_bad_amount(self):
        with pytest.raises(ValueError):
            calculate_invoice_totals([{"unit_price": "lots"}])


class TestPaymentPlanAmounts:
    def test_financed_and_monthly(self):
        assert calculate_payment_plan_amounts("5800.00", "1000.00", 24) == {
            "financed_amount": Decimal("4800.00"),
            "monthly_payment": Decimal("200.00"),
            "remaining_balance": Decimal("4800.00"),
        }

    def test_monthly_rounds_to_cents(self):
        result = calculate_payment_plan_amounts("1000", 0, 3)
        assert result["monthly_payment"] == Decimal("333.33")
        assert result["remaining_balance"] == Decimal("1000.00")

    @pytest.mark.parametrize("total, down, count", [
        ("1000", "0", 0),
        ("1000", "-1", 12),
        ("1000", "1000.01", 12),
    ])
    def test_invalid(self, total, down, count):
        with pytest.raises(ValueError):
            calculate_payment_plan_amounts(total, down, count)

    def test_down_payment_equal_to_total(self):
        assert calculate_payment_plan_amounts("500", "500", 1)["financed_amount"] == Decimal("0.00")


class TestAging:
    def test_days_overdue(self):
        today = date(2026, 5, 31)
        assert calculate_days_overdue(None, today) == 0
        assert calculate_days_overdue(date(2026, 6, 10), today) == 0
        assert calculate_days_overdue(date(2026, 5, 1), today) == 30

    @pytest.mark.parametrize("days, bucket", [
        (-5, "CURRENT"),
        (0, "CURRENT"),
        (1, "1_30"),
        (30, "1_30"),
        (31, "31_60"),
        (60, "31_60"),
        (90, "61_90"),
        (120, "91_120"),
        (121, "120_PLUS"),
    ])
    def test_bucket_edges(self, days, bucket):
        assert get_aging_bucket(days) == bucket

    def test_labels(self):
        assert calculations.aging_bucket_label("120_PLUS") == "120+ Days"
        assert calculations.aging_bucket_label("unknown") == "unknown"


class TestPaymentLinkCode:
    def test_format(self):
        code = generate_payment_link_code()
        assert len(code) == 12
        assert set(code) <= set(calculations.PAYMENT_LINK_ALPHABET)

    def test_ambiguous_characters_excluded(self):
        assert not set("0O1lI") & set(calculations.PAYMENT_LINK_ALPHABET)


class TestAddMonths:
    @pytest.mark.parametrize("start, months, expected", [
        (date(2026, 1, 15), 1, date(2026, 2, 15)),
        (date(2026, 1, 31), 1, date(2026, 2, 28)),
        (date(2028, 1, 31), 1, date(2028, 2, 29)),
        (date(2026, 11, 30), 3, date(2027, 2, 28)),
        (date(2026, 12, 5), 12, date(2027, 12, 5)),
    ])
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected
