"""
billing_config -- single public entrypoint for tariff and subsidy configuration.

Responsibility:
    Provides the effective-dated configuration set through
    ``get_active_config()`` and the point lookups ``get_tariff()`` and
    ``get_subsidy_class()``.  YAML loading is internal tooling.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and ``billing_engines``.
    The kernel MUST NEVER import from ``billing_config``; bridges in this
    package translate configuration into engine inputs that callers pass
    down as plain parameters.

Invariants enforced:
    - Tariff versions and subsidy policies never overlap in time.
    - Deterministic loading: the same YAML fragments always produce the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- configuration set directory or fragment
      missing.
    - ``ValueError`` -- invalid values or overlapping ranges.
    - ``TariffNotFoundError`` / ``SubsidyClassNotFoundError`` -- nothing
      effective on the requested date.

Audit relevance:
    Every ``get_active_config()`` call emits a ``BILLING_CONFIG_TRACE`` log
    entry with the config id, version and checksum, tying each computed
    charge back to the exact rates that produced it.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from billing_config.loader import compute_checksum, load_configuration_set
from billing_config.schema import (
    BillingConfigurationSet,
    SubsidyClassDef,
    SubsidyPolicy,
    TariffVersion,
)
from billing_kernel.exceptions import SubsidyClassNotFoundError, TariffNotFoundError

_logger = logging.getLogger("billing_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_active_config(config_dir: Path | None = None) -> BillingConfigurationSet:
    """
    Load and validate the configuration set.

    Args:
        config_dir: Override path to a configuration set directory.
            Defaults to billing_config/sets/default/.

    Raises:
        FileNotFoundError: If the directory or a fragment is missing.
        ValueError: If validation fails.
    """
    config = load_configuration_set(config_dir or _DEFAULT_CONFIG_DIR)

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "tariff_count": len(config.tariffs),
            "subsidy_policy_count": len(config.subsidy_policies),
        },
    )
    return config


def get_tariff(as_of: date, config: BillingConfigurationSet | None = None) -> TariffVersion:
    """
    Tariff version effective on ``as_of``.

    Raises:
        TariffNotFoundError: No version covers the date.
    """
    config = config or get_active_config()
    for tariff in config.tariffs:
        if tariff.covers(as_of):
            return tariff
    raise TariffNotFoundError(as_of.isoformat())


def get_subsidy_class(
    code: str,
    as_of: date,
    config: BillingConfigurationSet | None = None,
) -> SubsidyClassDef:
    """
    Subsidy class ``code`` as defined on ``as_of``.

    Raises:
        SubsidyClassNotFoundError: No policy covers the date, or the
            policy has no such class.
    """
    config = config or get_active_config()
    for policy in config.subsidy_policies:
        if policy.covers(as_of):
            found = policy.get_class(code)
            if found is not None:
                return found
            break
    raise SubsidyClassNotFoundError(code, as_of.isoformat())


__all__ = [
    "BillingConfigurationSet",
    "SubsidyClassDef",
    "SubsidyPolicy",
    "TariffVersion",
    "compute_checksum",
    "get_active_config",
    "get_subsidy_class",
    "get_tariff",
]
