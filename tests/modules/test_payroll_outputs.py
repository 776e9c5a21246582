"""
Tests for payroll outputs: payslips, transfer lines, statutory returns and
the period summary.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from payroll_engines.partition import PaymentMethod
from payroll_modules.records.models import AllowanceType, EmploymentType
from payroll_modules.records.outputs import (
    CompanyInfo,
    PayrollOutputService,
    describe_payment_method,
    generate_payslip,
    mask_account_number,
    nssf_return,
    paye_return,
    summarize_payroll,
    transfer_lines,
)
from tests.factories import SUBSIDIARY_ID, allowance, make_employee

COMPANY = CompanyInfo(
    name="Nile Breweries Ltd",
    tin="1000023456",
    address="Plot 12, Jinja Road, Kampala",
    nssf_employer_number="NSSF-EMP-0042",
)


@pytest.fixture
def records(builder, directory):
    employees = [
        make_employee("emp-001", "EMP001", "1000000",
                      allowances=(allowance(AllowanceType.TRANSPORT, 150000),)),
        make_employee("emp-002", "EMP002", "2000000", first_name="Joseph", last_name="Okello",
                      bank="Centenary Bank", department_id="dept-ops", department_name="Operations"),
        make_employee("emp-003", "EMP003", "800000", first_name="Grace", last_name="Atim",
                      bank=None, mobile_provider="mtn"),
        make_employee("emp-004", "EMP004", "600000", first_name="Ivan", last_name="Ssemakula",
                      employment_type=EmploymentType.INTERN, bank="Stanbic Bank"),
    ]
    result = []
    for employee in employees:
        directory.add(employee)
        result.append(builder.calculate_employee_payroll(employee.employee_id, 2024, 9))
    return result


@pytest.fixture
def output_service(session, directory):
    return PayrollOutputService(session, directory)


class TestPayslip:

    def test_payslip_fields(self, records, directory):
        record = records[0]
        employee = directory.get_employee("emp-001")
        generated = datetime(2024, 9, 27, 10, 0, tzinfo=timezone.utc)
        payslip = generate_payslip(record, COMPANY, employee, generated_at=generated)

        assert payslip.payslip_number == "PS-EMP001-202409"
        assert payslip.pay_period == "September 2024"
        assert payslip.company_name == "Nile Breweries Ltd"
        assert payslip.nssf_number == "NSEMP001"
        assert payslip.tin_number == "1000012233"
        assert [line.description for line in payslip.earnings] == [
            "Basic Salary", "Transport Allowance",
        ]
        assert payslip.net_pay == record.net_pay
        assert payslip.net_pay == payslip.total_earnings - payslip.total_deductions
        assert payslip.payment_method == "Bank Transfer - Stanbic Bank"
        assert payslip.bank_details == "Stanbic Bank - ********4471"
        assert payslip.generated_at == generated

    def test_net_pay_in_words(self, records):
        payslip = generate_payslip(records[1], COMPANY)
        assert payslip.net_pay == Decimal("1404000")
        assert payslip.net_pay_words == (
            "One Million Four Hundred and Four Thousand Uganda Shillings Only"
        )

    def test_without_employee_identifiers(self, records):
        payslip = generate_payslip(records[0], COMPANY)
        assert payslip.nssf_number is None
        assert payslip.tin_number is None

    def test_ytd_figures(self, records):
        payslip = generate_payslip(records[0], COMPANY)
        assert payslip.ytd_gross == records[0].ytd.gross_earnings
        assert payslip.ytd_paye == records[0].ytd.paye

    def test_mobile_money_description(self, records):
        assert describe_payment_method(records[2]) == "Mobile Money - MTN"
        assert generate_payslip(records[2], COMPANY).bank_details is None


class TestMasking:

    @pytest.mark.parametrize(
        "number, expected",
        [
            ("903000014471", "********4471"),
            ("1234", "1234"),
            ("12", "12"),
            (None, None),
        ],
    )
    def test_mask(self, number, expected):
        assert mask_account_number(number) == expected


class TestTransfers:

    def test_bank_lines_filtered_by_bank(self, records):
        lines = transfer_lines(records, PaymentMethod.BANK_TRANSFER, bank_name="Stanbic Bank")
        assert [line.employee_number for line in lines] == ["EMP001", "EMP004"]
        assert lines[0].reference == "SAL-202409-EMP001"
        assert lines[0].narration == "Salary September 2024"
        assert lines[0].account_name == "Sarah Nakato"

    def test_mobile_lines_match_provider_case_insensitively(self, records):
        lines = transfer_lines(records, PaymentMethod.MOBILE_MONEY, provider="MTN")
        assert len(lines) == 1
        assert lines[0].mobile_number == "256772000111"

    def test_bank_lines_carry_account_details(self, records):
        lines = transfer_lines(records, PaymentMethod.BANK_TRANSFER)

        assert [line.bank_name for line in lines] == [
            "Stanbic Bank", "Centenary Bank", "Stanbic Bank",
        ]
        assert all(line.account_number for line in lines)
        assert sum(line.amount for line in lines) == sum(
            r.net_pay for r in records
            if r.payment_details.method is PaymentMethod.BANK_TRANSFER
        )

    def test_mobile_lines_amount(self, records):
        lines = transfer_lines(records, PaymentMethod.MOBILE_MONEY)
        assert [(line.employee_number, line.amount) for line in lines] == [
            ("EMP003", Decimal("615000")),
        ]


class TestReturns:

    def test_paye_return(self, records):
        result = paye_return(records, COMPANY, {"emp-001": "1000012233"})

        assert result.period == "2024-09"
        assert result.employer_tin == "1000023456"
        assert result.total_employees == 4
        assert result.total_paye == sum(r.paye.net_paye for r in records)
        assert result.entries[0].tin_number == "1000012233"
        assert result.entries[1].tin_number == ""

    def test_nssf_return_skips_exempt(self, records):
        result = nssf_return(records, COMPANY)

        # the intern is NSSF exempt
        assert result.total_employees == 3
        assert result.employer_number == "NSSF-EMP-0042"
        assert result.total_contribution == (
            result.total_employee_contribution + result.total_employer_contribution
        )
        # EMP002 earns above the cap
        capped = next(e for e in result.entries if e.employee_number == "EMP002")
        assert capped.wages == Decimal("1800000")
        assert capped.total_contribution == Decimal("270000")

    def test_empty_returns(self):
        assert paye_return([], COMPANY).period == ""
        assert nssf_return([], COMPANY).total_contribution == Decimal("0")


class TestSummary:

    def test_totals_and_groups(self, records):
        summary = summarize_payroll(records, SUBSIDIARY_ID, 2024, 9)

        assert summary.employee_count == 4
        assert summary.net_pay == sum(r.net_pay for r in records)
        assert summary.allowances == Decimal("150000")
        assert summary.gross_pay == summary.basic_salary + summary.allowances + summary.overtime
        assert [g.key for g in summary.by_department] == ["Finance", "Operations"]
        assert [(g.key, g.employee_count) for g in summary.by_payment_method] == [
            ("bank_transfer", 3), ("mobile_money", 1),
        ]
        assert [(g.key, g.employee_count) for g in summary.by_bank] == [
            ("Centenary Bank", 1), ("Stanbic Bank", 2),
        ]


class TestOutputService:

    def test_payslip_loads_identifiers(self, records, output_service):
        payslip = output_service.payslip(records[1].id, COMPANY)
        assert payslip.employee_name == "Joseph Okello"
        assert payslip.tin_number == "1000022233"

    def test_batch_payslips(self, batch_service, records, output_service, test_actor_id, captured_logs):
        batch = batch_service.create_batch(SUBSIDIARY_ID, 2024, 9, test_actor_id)
        batch = batch_service.calculate_batch(batch.id, test_actor_id)

        payslips = output_service.batch_payslips(batch.id, COMPANY)
        assert [p.payslip_number for p in payslips] == [
            "PS-EMP001-202409", "PS-EMP002-202409", "PS-EMP003-202409", "PS-EMP004-202409",
        ]
        assert any(r["message"] == "payslips_generated" for r in captured_logs())

    def test_statutory_returns_use_directory(self, records, output_service):
        paye = output_service.paye_return(SUBSIDIARY_ID, 2024, 9, COMPANY)
        assert {e.tin_number for e in paye.entries} == {
            "1000012233", "1000022233", "1000032233", "1000042233",
        }
        nssf = output_service.nssf_return(SUBSIDIARY_ID, 2024, 9, COMPANY)
        assert nssf.entries[0].nssf_number == "NSEMP001"

    def test_reversed_records_excluded(self, records, builder, output_service, test_actor_id):
        record = records[0]
        builder.mark_reviewed([record.id], test_actor_id)
        builder.approve([record.id], test_actor_id)
        builder.mark_paid([record.id], test_actor_id)
        builder.reverse([record.id], test_actor_id)

        summary = output_service.period_summary(SUBSIDIARY_ID, 2024, 9)
        assert summary.employee_count == 3
