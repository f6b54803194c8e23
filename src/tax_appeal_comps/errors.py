from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the comparable engine."""


class InvalidIdentifier(EngineError, ValueError):
    def __init__(self, raw: object) -> None:
        self.raw = raw
        super().__init__(
            f"Invalid PIN {raw!r}: Cook County PINs must have exactly 14 digits"
        )


class TransientFailure(EngineError):
    """Network, timeout or parse failure from one named external source."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"{source}: {detail}")


class FatalSourceFailure(TransientFailure):
    """The authoritative source failed; no result can be produced."""


class StoreUnavailable(EngineError):
    """The durable enrichment store could not be read or written."""
