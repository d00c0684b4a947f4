"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, overlays an optional site file and
environment overrides, and parses the result into a frozen
``LedgerSettings``.

Architecture position
---------------------
**Config layer**.  Imports kernel DTO enums only; the kernel never imports
from ``ledger_config``.

Invariants enforced
-------------------
* Unknown keys are rejected; a typo never silently falls back to a default.
* ``compute_checksum`` gives a deterministic identity for the effective
  settings, logged with every load.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, unknown payment status, bad number  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.dtos import PaymentStatus

_logger = logging.getLogger("ledger_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "LEDGER_DATABASE_URL"

KNOWN_KEYS = frozenset({
    "database_url",
    "log_level",
    "overpayment_tolerance",
    "counter_max_attempts",
    "counter_retry_backoff_seconds",
    "payment_notes",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def merge_settings(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay ``overlay`` on ``base``; payment_notes merge per status."""
    merged = dict(base)
    for key, value in overlay.items():
        if key == "payment_notes" and isinstance(value, Mapping):
            notes = dict(merged.get("payment_notes") or {})
            notes.update(value)
            merged[key] = notes
        else:
            merged[key] = value
    return merged


def _parse_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{key}: not a decimal: {value!r}") from exc


def _parse_notes(value: Any) -> dict[PaymentStatus, str]:
    if not isinstance(value, Mapping):
        raise ValueError(f"payment_notes: expected a mapping, got {value!r}")
    notes = {}
    for status, message in value.items():
        try:
            notes[PaymentStatus(str(status).upper())] = str(message)
        except ValueError as exc:
            raise ValueError(f"payment_notes: unknown status {status!r}") from exc
    return notes


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """
    Parse a settings dict into ``LedgerSettings``.

    Raises:
        ValueError: unknown keys or invalid values.
    """
    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(sorted(unknown))}")

    kwargs: dict[str, Any] = {}
    if "database_url" in data:
        kwargs["database_url"] = str(data["database_url"])
    if "log_level" in data:
        kwargs["log_level"] = str(data["log_level"])
    if "overpayment_tolerance" in data:
        kwargs["overpayment_tolerance"] = _parse_decimal(
            "overpayment_tolerance", data["overpayment_tolerance"]
        )
    if "counter_max_attempts" in data:
        kwargs["counter_max_attempts"] = int(data["counter_max_attempts"])
    if "counter_retry_backoff_seconds" in data:
        kwargs["counter_retry_backoff_seconds"] = float(
            data["counter_retry_backoff_seconds"]
        )
    if "payment_notes" in data:
        kwargs["payment_notes"] = _parse_notes(data["payment_notes"])
    return LedgerSettings(**kwargs)


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Load the effective settings.

    Order: packaged defaults, then ``path`` (or the file named by
    ``LEDGER_CONFIG``), then ``LEDGER_DATABASE_URL``.

    Args:
        path: Optional override file.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        FileNotFoundError: the override file does not exist.
        ValueError: unknown keys or invalid values.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    override = path if path is not None else env.get(CONFIG_ENV_VAR)
    if override:
        override_path = Path(override)
        data = merge_settings(data, load_yaml_file(override_path))
        sources.append(str(override_path))

    if env.get(DATABASE_URL_ENV_VAR):
        data["database_url"] = env[DATABASE_URL_ENV_VAR]
        sources.append(DATABASE_URL_ENV_VAR)

    settings = parse_settings(data)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "sources": sources,
            "checksum": compute_checksum(data),
            "log_level": settings.log_level,
        },
    )
    return settings
