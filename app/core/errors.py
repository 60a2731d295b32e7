"""Error taxonomy for the market pipeline.

StorageError propagates to the global handler. ExternalServiceError is
recovered where it is raised (stale fallback, skipped catch-up).
DataIntegrityWarning marks a row that is dropped and logged.
"""


class MarketServiceError(Exception):
    """Base class for market service failures."""


class StorageError(MarketServiceError):
    """Catalog, ledger or profile store failed to read or write."""


class ExternalServiceError(MarketServiceError):
    """Chain RPC or indexer was unreachable or returned an error."""


class DataIntegrityWarning(MarketServiceError):
    """A stored row is missing expected fields or references unknown data."""
