"""
Configuration loader (``payroll_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``payroll_config.schema`` dataclasses, validating the structural rules the
tax engines rely on (contiguous bands, sane rates, known methods).

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Missing keys or invalid values -> ``ConfigurationError`` listing every
  problem found.

Audit relevance
---------------
``compute_checksum`` fingerprints the raw document so every calculation can
be traced to the exact tables that governed it.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    BatchPolicy,
    LSTBand,
    LSTConfig,
    NSSFConfig,
    OvertimeConfig,
    PAYEConfig,
    PayrollConfiguration,
    TaxBand,
)
from payroll_kernel.domain.rounding import RoundingMethod
from payroll_kernel.exceptions import ConfigurationError

VALID_PRORATION_METHODS = frozenset({"calendar_days", "working_days"})
REQUIRED_OVERTIME_TYPES = frozenset({"regular", "weekend", "holiday"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed YAML document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _decimal(value: Any, field: str) -> Decimal:
    if value is None:
        raise ValueError(f"{field} is required")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field} is not a number: {value!r}") from exc


def _optional_decimal(value: Any, field: str) -> Decimal | None:
    return None if value is None else _decimal(value, field)


def parse_paye(data: dict[str, Any]) -> PAYEConfig:
    return PAYEConfig(
        bands=tuple(
            TaxBand(
                lower=_decimal(b["lower"], "paye.bands.lower"),
                upper=_optional_decimal(b.get("upper"), "paye.bands.upper"),
                rate=_decimal(b["rate"], "paye.bands.rate"),
            )
            for b in data["bands"]
        )
    )


def parse_nssf(data: dict[str, Any]) -> NSSFConfig:
    return NSSFConfig(
        monthly_cap=_decimal(data["monthly_cap"], "nssf.monthly_cap"),
        employee_rate=_decimal(data["employee_rate"], "nssf.employee_rate"),
        employer_rate=_decimal(data["employer_rate"], "nssf.employer_rate"),
        exemption_age=int(data["exemption_age"]),
        default_employee_age=int(data["default_employee_age"]),
        exempt_categories=tuple(data.get("exempt_categories") or ()),
    )


def parse_lst(data: dict[str, Any]) -> LSTConfig:
    return LSTConfig(
        bands=tuple(
            LSTBand(
                lower=_decimal(b["lower"], "lst.bands.lower"),
                upper=_optional_decimal(b.get("upper"), "lst.bands.upper"),
                annual_amount=_decimal(b["annual_amount"], "lst.bands.annual_amount"),
            )
            for b in data["bands"]
        )
    )


def parse_overtime(data: dict[str, Any]) -> OvertimeConfig:
    return OvertimeConfig(
        working_days_per_month=int(data["working_days_per_month"]),
        hours_per_day=int(data["hours_per_day"]),
        multipliers={
            str(k): _decimal(v, f"overtime.multipliers.{k}")
            for k, v in data["multipliers"].items()
        },
    )


def parse_batch_policy(data: dict[str, Any]) -> BatchPolicy:
    return BatchPolicy(
        ceo_approval_threshold=_decimal(
            data["ceo_approval_threshold"], "batch.ceo_approval_threshold"
        ),
        directory_query_chunk_size=int(data.get("directory_query_chunk_size", 10)),
        subsidiary_code_length=int(data.get("subsidiary_code_length", 3)),
    )


def _check_contiguous(name: str, bands: tuple, problems: list[str]) -> None:
    if not bands:
        problems.append(f"{name}: at least one band is required")
        return
    if bands[0].lower != 0:
        problems.append(f"{name}: first band must start at 0")
    for prev, nxt in zip(bands, bands[1:]):
        if prev.upper is None:
            problems.append(f"{name}: only the last band may be unbounded")
        elif nxt.lower != prev.upper:
            problems.append(
                f"{name}: gap or overlap between {prev.upper} and {nxt.lower}"
            )
    if bands[-1].upper is not None:
        problems.append(f"{name}: last band must be unbounded")


def validate_configuration(config: PayrollConfiguration) -> list[str]:
    """Return every structural problem found; empty list means valid."""
    problems: list[str] = []
    _check_contiguous("paye", config.paye.bands, problems)
    _check_contiguous("lst", config.lst.bands, problems)

    for band in config.paye.bands:
        if not (Decimal("0") <= band.rate <= Decimal("1")):
            problems.append(f"paye: rate {band.rate} outside [0, 1]")
    for band in config.lst.bands:
        if band.annual_amount < 0:
            problems.append(f"lst: negative annual amount {band.annual_amount}")

    nssf = config.nssf
    if nssf.monthly_cap <= 0:
        problems.append("nssf: monthly_cap must be positive")
    for label, rate in (("employee_rate", nssf.employee_rate), ("employer_rate", nssf.employer_rate)):
        if not (Decimal("0") <= rate <= Decimal("1")):
            problems.append(f"nssf: {label} {rate} outside [0, 1]")

    missing = REQUIRED_OVERTIME_TYPES - set(config.overtime.multipliers)
    if missing:
        problems.append(f"overtime: missing multipliers for {sorted(missing)}")
    if config.overtime.working_days_per_month <= 0 or config.overtime.hours_per_day <= 0:
        problems.append("overtime: working days and hours per day must be positive")

    if config.proration_method not in VALID_PRORATION_METHODS:
        problems.append(
            f"proration_method must be one of {sorted(VALID_PRORATION_METHODS)}, "
            f"got {config.proration_method!r}"
        )
    if not 1 <= config.fiscal_year_start_month <= 12:
        problems.append("fiscal_year_start_month must be 1-12")
    if not 1 <= config.default_payment_day <= 31:
        problems.append("default_payment_day must be 1-31")
    if config.batch.directory_query_chunk_size <= 0:
        problems.append("batch.directory_query_chunk_size must be positive")
    return problems


def parse_configuration(data: dict[str, Any], source: str = "<memory>") -> PayrollConfiguration:
    """
    Parse and validate a configuration document.

    Raises:
        ConfigurationError: if keys are missing or validation fails.
    """
    try:
        config = PayrollConfiguration(
            name=data["name"],
            country=data.get("country", "UG"),
            currency=data.get("currency", "UGX"),
            effective_from=str(data.get("effective_from", "")),
            paye=parse_paye(data["paye"]),
            nssf=parse_nssf(data["nssf"]),
            lst=parse_lst(data["lst"]),
            overtime=parse_overtime(data["overtime"]),
            batch=parse_batch_policy(data["batch"]),
            rounding_method=RoundingMethod(data.get("rounding_method", "round")),
            proration_method=data.get("proration_method", "calendar_days"),
            fiscal_year_start_month=int(data.get("fiscal_year_start_month", 7)),
            default_payment_day=int(data.get("default_payment_day", 28)),
            checksum=compute_checksum(data),
        )
    except KeyError as exc:
        raise ConfigurationError(source, [f"missing key {exc.args[0]!r}"]) from exc
    except ValueError as exc:
        raise ConfigurationError(source, [str(exc)]) from exc

    problems = validate_configuration(config)
    if problems:
        raise ConfigurationError(source, problems)
    return config


def load_config(path: Path) -> PayrollConfiguration:
    """Load, parse and validate the configuration set at ``path``."""
    return parse_configuration(load_yaml_file(path), source=str(path))
