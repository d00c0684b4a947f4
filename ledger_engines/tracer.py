"""
ledger_engines.tracer -- ``@traced_engine``, one LEDGER_ENGINE_TRACE record per engine call.

Responsibility:
    Wrap the pure calculation functions (amounts, reconcile, aging) so each
    successful call logs which engine ran, at which version, over which
    inputs, and how long it took.  Inputs are summarised as a short hash so
    two runs over the same figures can be matched up in the logs without
    writing amounts or counterparty names into them.

Architecture position:
    Engines.  Logs through ``ledger_kernel.engines.tracer`` with the stdlib
    logger directly, so engines stay importable without the kernel and
    still land on the kernel's JSON handler once it is configured.

Invariants enforced:
    - Same inputs give the same fingerprint: mappings are hashed with
      sorted keys, sequences in order, the digest cut to 16 hex chars.
    - The wrapper reads arguments only; return values pass through as is.

Failure modes:
    - A fingerprint field the call did not bind hashes as "null".
    - Errors from the engine propagate; a failed call logs nothing.

Usage:
    from ledger_engines.tracer import traced_engine

    @traced_engine("amounts", "1.0", fingerprint_fields=("quantity",))
    def compute_amounts(quantity, unit_price, tax_rate_percent):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("ledger_kernel.engines.tracer")

TRACE_TYPE = "LEDGER_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Text form of an argument for hashing; equal values give equal text."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(asdict(value))
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """SHA-256 over ``name=value`` pairs for the named arguments, first 16 hex chars."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Log a trace record after each successful call of the wrapped engine.

    ``fingerprint_fields`` names the parameters, bound positionally or by
    keyword, that go into ``input_fingerprint``.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                try:
                    bound = signature.bind_partial(*args, **kwargs).arguments
                except TypeError:
                    # Let the call itself raise the argument error.
                    bound = kwargs
                fp = compute_input_fingerprint(fingerprint_fields, bound)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
