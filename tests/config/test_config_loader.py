"""
Tests for the statutory configuration loader.

Covers the shipped Uganda set and the structural validation that rejects
broken tables with ConfigurationError.
"""

import copy
from decimal import Decimal

import pytest
import yaml

from payroll_config import clear_config_cache, get_active_config
from payroll_config.loader import load_yaml_file, parse_configuration
from payroll_kernel.exceptions import ConfigurationError
from payroll_kernel.domain.rounding import RoundingMethod


@pytest.fixture
def raw_uganda():
    from payroll_config import _DEFAULT_CONFIG_DIR

    return load_yaml_file(_DEFAULT_CONFIG_DIR / "uganda.yaml")


class TestShippedConfiguration:

    def test_uganda_set_loads(self):
        config = get_active_config()

        assert config.name == "uganda"
        assert config.currency == "UGX"
        assert config.rounding_method is RoundingMethod.ROUND
        assert config.fiscal_year_start_month == 7
        assert len(config.checksum) == 64

    def test_paye_bands(self):
        config = get_active_config()
        assert [(b.lower, b.upper, b.rate) for b in config.paye.bands] == [
            (Decimal("0"), Decimal("235000"), Decimal("0")),
            (Decimal("235000"), Decimal("335000"), Decimal("0.10")),
            (Decimal("335000"), Decimal("410000"), Decimal("0.20")),
            (Decimal("410000"), Decimal("10000000"), Decimal("0.30")),
            (Decimal("10000000"), None, Decimal("0.40")),
        ]

    def test_nssf_and_batch_policy(self):
        config = get_active_config()
        assert config.nssf.monthly_cap == Decimal("1800000")
        assert config.nssf.employee_rate == Decimal("0.05")
        assert config.nssf.employer_rate == Decimal("0.10")
        assert config.batch.ceo_approval_threshold == Decimal("100000000")
        assert config.batch.directory_query_chunk_size == 10

    def test_cached(self):
        assert get_active_config() is get_active_config()

    def test_cache_cleared(self, captured_logs):
        clear_config_cache()
        get_active_config()
        assert any(r["message"] == "payroll_config_loaded" for r in captured_logs())

    def test_unknown_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nowhere", config_dir=tmp_path)


class TestValidation:

    def test_gap_between_paye_bands(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["paye"]["bands"][1]["lower"] = 240000

        with pytest.raises(ConfigurationError) as exc_info:
            parse_configuration(data, source="test")
        assert any("gap or overlap" in p for p in exc_info.value.problems)

    def test_last_band_must_be_unbounded(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["lst"]["bands"][-1]["upper"] = 999999999

        with pytest.raises(ConfigurationError, match="unbounded"):
            parse_configuration(data)

    def test_rate_out_of_range(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["nssf"]["employee_rate"] = "1.5"

        with pytest.raises(ConfigurationError, match="employee_rate"):
            parse_configuration(data)

    def test_missing_section(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        del data["nssf"]

        with pytest.raises(ConfigurationError, match="missing key 'nssf'"):
            parse_configuration(data)

    def test_unknown_proration_method(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["proration_method"] = "hours"

        with pytest.raises(ConfigurationError, match="proration_method"):
            parse_configuration(data)

    def test_non_numeric_amount(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["nssf"]["monthly_cap"] = "lots"

        with pytest.raises(ConfigurationError, match="not a number"):
            parse_configuration(data)

    def test_every_problem_reported(self, raw_uganda):
        data = copy.deepcopy(raw_uganda)
        data["fiscal_year_start_month"] = 13
        data["default_payment_day"] = 0

        with pytest.raises(ConfigurationError) as exc_info:
            parse_configuration(data)
        assert len(exc_info.value.problems) == 2

    def test_custom_set_from_directory(self, raw_uganda, tmp_path):
        data = copy.deepcopy(raw_uganda)
        data["name"] = "uganda-test"
        data["batch"]["ceo_approval_threshold"] = 5000000
        (tmp_path / "uganda-test.yaml").write_text(yaml.safe_dump(data))

        config = get_active_config("uganda-test", config_dir=tmp_path)
        assert config.batch.ceo_approval_threshold == Decimal("5000000")
