"""
payroll_config -- statutory payroll configuration.

Responsibility:
    Provides ``get_active_config()``, the runtime entrypoint for PAYE, NSSF
    and LST tables, working-time constants and batch policy.  Services and
    engines receive the returned ``PayrollConfiguration`` explicitly.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigurationError`` -- the set failed validation.

Audit relevance:
    Every load emits a ``payroll_config_loaded`` log entry with the set
    name and checksum.
"""

from __future__ import annotations

import threading
from pathlib import Path

from payroll_config.loader import load_config, parse_configuration
from payroll_config.schema import PayrollConfiguration
from payroll_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_SET = "uganda"

_cache: dict[Path, PayrollConfiguration] = {}
_cache_lock = threading.Lock()


def get_active_config(
    name: str = _DEFAULT_SET,
    config_dir: Path | None = None,
) -> PayrollConfiguration:
    """
    Return the named configuration set, loading it on first use.

    Guarantees:
        - The returned configuration passed validation.
        - Repeated calls for the same file return the same object.
    """
    path = (config_dir or _DEFAULT_CONFIG_DIR) / f"{name}.yaml"
    with _cache_lock:
        config = _cache.get(path)
        if config is None:
            config = load_config(path)
            _cache[path] = config
            _logger.info(
                "payroll_config_loaded",
                extra={"config_name": config.name, "checksum": config.checksum},
            )
    return config


def clear_config_cache() -> None:
    """Forget loaded sets. FOR TESTING ONLY."""
    with _cache_lock:
        _cache.clear()


__all__ = [
    "PayrollConfiguration",
    "clear_config_cache",
    "get_active_config",
    "load_config",
    "parse_configuration",
]
