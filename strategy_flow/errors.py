"""Exception taxonomy for conversion, storage and import failures."""

from __future__ import annotations

from typing import List, Sequence


class StrategyFlowError(Exception):
    """Base class for every error raised by strategy_flow."""


class InvalidInput(StrategyFlowError, ValueError):
    """The structured strategy lacks an id or business context."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__(f"Invalid structured input: {', '.join(self.errors)}")


class ConversionValidationFailed(StrategyFlowError):
    """Rendering succeeded but the markup is structurally insufficient."""

    def __init__(self, message: str = "Conversion validation failed", warnings: Sequence[str] = ()) -> None:
        self.warnings: List[str] = list(warnings)
        super().__init__(message)


class StorageWriteFailed(StrategyFlowError):
    """The durable key-value storage rejected a write."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to write '{key}': {reason}")


class ImportMalformed(StrategyFlowError):
    """The snapshot could not be parsed at the top level."""


class ImportEntrySkipped(StrategyFlowError):
    """A single snapshot entry was invalid or of an unrecognised shape."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(message)
