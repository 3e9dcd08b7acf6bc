"""Exception types raised by ``capacity_import``.

Row-level problems in imported data are never raised; parsers and validators
return them as message lists alongside the partial result. The exceptions here
cover misuse of the import workflow, unresolvable calendar selections, and
invalid configuration. Header/structure problems in CSV input are reported as
``csv.Error`` by the ingest layer.
"""

from __future__ import annotations


class CapacityImportError(Exception):
    """Base class for errors raised by this package."""


class ImportStateError(CapacityImportError):
    """An import session operation was attempted from the wrong step."""


class CycleResolutionError(CapacityImportError):
    """No cycle in the calendar matches the requested quarter/financial year."""


class ConfigError(CapacityImportError, ValueError):
    """Settings or anchor values could not be parsed."""


__all__ = [
    "CapacityImportError",
    "ImportStateError",
    "CycleResolutionError",
    "ConfigError",
]
