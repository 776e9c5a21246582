"""
Property-based tests for the payroll engines.

Properties checked over generated inputs:
- PAYE is non-negative, monotone in income and never exceeds the top rate
- NSSF never exceeds the capped contribution
- Proration factor stays within [0, 1]
- Payment partitioning preserves every line and the total
- A built payroll always satisfies net = gross - deductions
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from payroll_config import get_active_config
from payroll_engines.partition import PaymentLine, PaymentMethod, partition_payments
from payroll_engines.proration import calculate_proration
from payroll_engines.tax import NSSFOptions, PayrollTaxCalculator
from payroll_modules.records.models import (
    AdditionalDeduction,
    AllowanceType,
    DeductionType,
    PayrollOverrides,
    YearToDate,
)
from payroll_modules.records.service import PayrollInputs, PayrollRecordBuilder
from tests.factories import allowance, contract_deduction, make_employee

CONFIG = get_active_config()
CALCULATOR = PayrollTaxCalculator(CONFIG)

amounts = st.integers(min_value=0, max_value=200_000_000).map(Decimal)


class TestTaxProperties:

    @given(income=amounts)
    @settings(max_examples=200)
    def test_paye_bounded(self, income):
        result = CALCULATOR.calculate_paye(income)
        assert result.total_tax >= 0
        assert result.total_tax <= income * Decimal("0.40")
        assert result.total_tax == sum(b.tax for b in result.bands)

    @given(a=amounts, b=amounts)
    @settings(max_examples=200)
    def test_paye_monotone(self, a, b):
        low, high = sorted((a, b))
        assert CALCULATOR.calculate_paye(low).total_tax <= CALCULATOR.calculate_paye(high).total_tax

    @given(gross=amounts, age=st.integers(min_value=16, max_value=55))
    @settings(max_examples=100)
    def test_nssf_capped(self, gross, age):
        result = CALCULATOR.calculate_nssf(gross, NSSFOptions(employee_age=age))
        assert result.employee_contribution <= Decimal("90000")
        assert result.employer_contribution <= Decimal("180000")
        assert result.total_contribution == (
            result.employee_contribution + result.employer_contribution
        )

    @given(
        gross=amounts,
        ytd_paid=st.integers(min_value=0, max_value=100_000).map(Decimal),
        months=st.integers(min_value=0, max_value=12),
    )
    def test_lst_never_negative(self, gross, ytd_paid, months):
        result = CALCULATOR.calculate_lst(gross, Decimal("0"), ytd_paid, months)
        assert result.monthly_amount >= 0
        assert result.remaining_amount <= result.annual_amount


class TestProrationProperties:

    @given(
        join_offset=st.integers(min_value=-60, max_value=60),
        exit_offset=st.one_of(st.none(), st.integers(min_value=-10, max_value=90)),
        leave=st.integers(min_value=0, max_value=40),
        method=st.sampled_from(["calendar_days", "working_days"]),
    )
    def test_factor_in_unit_interval(self, join_offset, exit_offset, leave, method):
        start, end = date(2024, 2, 1), date(2024, 2, 29)
        joining = start + timedelta(days=join_offset)
        exit_date = joining + timedelta(days=exit_offset) if exit_offset is not None else None

        result = calculate_proration(start, end, joining, exit_date, leave, method)
        assert 0 <= result.factor <= 1
        assert 0 <= result.worked_days <= result.total_days


class TestPartitionProperties:

    @given(
        st.lists(
            st.tuples(
                st.integers(min_value=0, max_value=50_000_000),
                st.sampled_from(list(PaymentMethod)),
                st.sampled_from(["Stanbic Bank", "Centenary Bank", "dfcu Bank", None]),
            ),
            max_size=40,
        )
    )
    def test_every_line_once_and_total_preserved(self, raw_lines):
        lines = [
            PaymentLine(
                payroll_id=uuid4(),
                employee_id=f"emp-{i}",
                employee_name=f"Employee {i}",
                net_pay=Decimal(amount),
                payment_method=method,
                bank_name=bank,
            )
            for i, (amount, method, bank) in enumerate(raw_lines)
        ]
        batches = partition_payments(lines, id_prefix="PAY-T-202409-01")

        ids = [pid for b in batches for pid in b.payroll_ids]
        assert sorted(ids, key=str) == sorted((line.payroll_id for line in lines), key=str)
        assert sum((b.total_amount for b in batches), Decimal("0")) == sum(
            (line.net_pay for line in lines), Decimal("0")
        )
        assert len({b.id for b in batches}) == len(batches)


class TestBuildProperties:
    """``build`` is pure, so it can be fuzzed without a database."""

    @given(
        base=st.integers(min_value=0, max_value=50_000_000),
        housing=st.integers(min_value=0, max_value=2_000_000),
        medical=st.integers(min_value=0, max_value=500_000),
        sacco=st.integers(min_value=0, max_value=3_000_000),
        extra=st.integers(min_value=0, max_value=5_000_000),
        leave=st.integers(min_value=0, max_value=31),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_net_pay_identity(self, base, housing, medical, sacco, extra, leave):
        employee = make_employee(
            base_salary=base,
            allowances=(
                allowance(AllowanceType.HOUSING, housing),
                allowance(AllowanceType.MEDICAL, medical),
            ),
            deductions=(contract_deduction(DeductionType.SACCO, sacco),),
        )
        builder = PayrollRecordBuilder(None, None, None, config=CONFIG)
        inputs = PayrollInputs(
            employee=employee,
            compensation=employee.compensation,
            year=2024,
            month=9,
            period_start=date(2024, 9, 1),
            period_end=date(2024, 9, 30),
            payment_date=date(2024, 9, 28),
            fiscal_year="2024-2025",
            remaining_months=10,
            overrides=PayrollOverrides(
                additional_deductions=(AdditionalDeduction("Advance", Decimal(extra)),),
                unpaid_leave_days=leave,
            ),
            overtime=(),
            loans=(),
            ytd_before=YearToDate(employee.employee_id, "2024-2025"),
        )
        record = builder.build(inputs)

        assert record.net_pay == record.gross_pay - record.total_deductions
        assert record.total_deductions == sum(d.amount for d in record.deductions)
        assert record.total_earnings == sum(e.amount for e in record.earnings)
        assert record.ytd.net_pay == record.net_pay
        assert all(d.amount > 0 for d in record.deductions)
