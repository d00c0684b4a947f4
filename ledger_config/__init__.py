"""
ledger_config -- runtime settings for the ledger core.

Responsibility:
    Single public entry point for settings: ``load_settings()`` returns a
    frozen ``LedgerSettings``.  Services receive settings as a constructor
    argument and never read files or environment variables themselves.

Architecture position:
    Configuration -- sits beside ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from ledger_config.loader import load_settings
from ledger_config.schema import LedgerSettings

__all__ = ["LedgerSettings", "load_settings"]
