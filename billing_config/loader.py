"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads the YAML fragment files of a configuration set and parses them into
typed ``billing_config.schema`` dataclass instances.  Runtime callers go
through ``billing_config.get_active_config()`` instead of calling this
module directly.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Effective ranges of tariff versions, and of subsidy policies, never
  overlap.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Overlapping ranges or bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfigurationSet,
    SubsidyClassDef,
    SubsidyPolicy,
    TariffVersion,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a non-negative Decimal; YAML floats go through ``str``."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse {value!r}") from exc
    if not result.is_finite() or result < 0:
        raise ValueError(f"{field}: must be a non-negative number, got {value!r}")
    return result


def _optional_date(data: dict[str, Any], key: str) -> date | None:
    return parse_date(data[key]) if data.get(key) else None


def parse_tariff(data: dict[str, Any]) -> TariffVersion:
    """Parse a TariffVersion from a dict."""
    version_id = data["version_id"]
    combined = data.get("combined_sewage_treatment_rate")
    return TariffVersion(
        version_id=version_id,
        effective_from=parse_date(data["effective_from"]),
        effective_to=_optional_date(data, "effective_to"),
        fixed_charge=parse_decimal(data["fixed_charge"], f"{version_id}.fixed_charge"),
        water_rate=parse_decimal(data["water_rate"], f"{version_id}.water_rate"),
        sewage_rate=parse_decimal(data.get("sewage_rate", 0), f"{version_id}.sewage_rate"),
        treatment_rate=parse_decimal(
            data.get("treatment_rate", 0), f"{version_id}.treatment_rate"
        ),
        combined_sewage_treatment_rate=(
            parse_decimal(combined, f"{version_id}.combined_sewage_treatment_rate")
            if combined is not None
            else None
        ),
        dispatch_cost=parse_decimal(data.get("dispatch_cost", 0), f"{version_id}.dispatch_cost"),
        vat_rate=parse_decimal(data["vat_rate"], f"{version_id}.vat_rate"),
    )


def parse_subsidy_class(data: dict[str, Any]) -> SubsidyClassDef:
    code = str(data["code"])
    threshold = parse_decimal(data["threshold_m3"], f"class {code}.threshold_m3")
    multiplier = parse_decimal(data["multiplier"], f"class {code}.multiplier")
    if threshold == 0 or multiplier == 0:
        raise ValueError(f"class {code}: threshold and multiplier must be positive")
    return SubsidyClassDef(
        code=code,
        percentage=parse_decimal(data["percentage"], f"class {code}.percentage"),
        threshold_m3=threshold,
        multiplier=multiplier,
    )


def parse_subsidy_policy(data: dict[str, Any]) -> SubsidyPolicy:
    classes = tuple(parse_subsidy_class(c) for c in data.get("classes", []))
    codes = [c.code for c in classes]
    if len(codes) != len(set(codes)):
        raise ValueError(f"Subsidy policy {data['policy_id']}: duplicate class codes")
    return SubsidyPolicy(
        policy_id=data["policy_id"],
        effective_from=parse_date(data["effective_from"]),
        effective_to=_optional_date(data, "effective_to"),
        classes=classes,
    )


def _check_ranges(kind: str, items: Sequence[Any], id_attr: str) -> None:
    ordered = sorted(items, key=lambda i: i.effective_from)
    for item in ordered:
        if item.effective_to is not None and item.effective_to < item.effective_from:
            raise ValueError(
                f"{kind} {getattr(item, id_attr)}: effective_to precedes effective_from"
            )
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.effective_to is None or prev.effective_to >= nxt.effective_from:
            raise ValueError(
                f"{kind} {getattr(prev, id_attr)} overlaps {getattr(nxt, id_attr)}"
            )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration_set(directory: Path) -> BillingConfigurationSet:
    """
    Load ``root.yaml``, ``tariffs.yaml`` and ``subsidies.yaml`` from a
    configuration set directory.

    Raises:
        FileNotFoundError: if a fragment is missing.
        ValueError: on invalid values or overlapping ranges.
    """
    root = load_yaml_file(directory / "root.yaml")
    tariffs_raw = load_yaml_file(directory / "tariffs.yaml")
    subsidies_raw = load_yaml_file(directory / "subsidies.yaml")

    tariffs = tuple(parse_tariff(t) for t in tariffs_raw.get("tariffs", []))
    policies = tuple(parse_subsidy_policy(p) for p in subsidies_raw.get("subsidy_policies", []))

    _check_ranges("Tariff", tariffs, "version_id")
    _check_ranges("Subsidy policy", policies, "policy_id")

    checksum = compute_checksum(
        {"root": root, "tariffs": tariffs_raw, "subsidies": subsidies_raw}
    )

    return BillingConfigurationSet(
        config_id=root["config_id"],
        version=int(root.get("version", 1)),
        currency=root.get("currency", "CLP"),
        tariffs=tariffs,
        subsidy_policies=policies,
        checksum=checksum,
    )
