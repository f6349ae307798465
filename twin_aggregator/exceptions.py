"""
Custom exceptions for the environmental twin aggregator.

Exception Hierarchy:
    AggregationError (base)
    ├── ConfigurationError - Required application setting missing or invalid
    ├── AuthenticationError - Credential or client construction failed
    ├── MalformedEventError - Event lacks the fields needed for processing
    ├── TwinStoreError - Twin Store call failed
    │   ├── StoreReadError - Query or relationship lookup failed
    │   └── StoreWriteError - Patch application failed
    ├── ConsistencyTimeoutError - Expected data never became visible
    └── AmbiguousTwinError - Id lookup returned more than one twin
"""

from typing import Any, Optional


class AggregationError(Exception):
    """
    Base exception for all aggregator errors.

    Attributes:
        message: Human-readable error description
        twin_id: Optional twin the error relates to
    """

    def __init__(self, message: str, twin_id: Optional[str] = None):
        self.message = message
        self.twin_id = twin_id

        if twin_id:
            full_message = f"{message} [twin={twin_id}]"
        else:
            full_message = message

        super().__init__(full_message)


class ConfigurationError(AggregationError):
    """Raised when a required application setting is missing or invalid."""

    def __init__(self, message: str, setting: Optional[str] = None):
        self.setting = setting
        super().__init__(message)


class AuthenticationError(AggregationError):
    """Raised when the credential or the Twin Store client cannot be built."""
    pass


class MalformedEventError(AggregationError):
    """Raised when an event, or the sensor twin it names, lacks the fields needed to aggregate."""
    pass


class TwinStoreError(AggregationError):
    """
    Raised when a call to the Twin Store fails.

    Wraps the SDK exception so callers only need to handle one family.

    Attributes:
        original_error: The underlying SDK exception, if any
    """

    def __init__(
        self,
        message: str,
        twin_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.original_error = original_error
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message, twin_id=twin_id)


class StoreReadError(TwinStoreError):
    """Raised when a query or relationship enumeration fails."""
    pass


class StoreWriteError(TwinStoreError):
    """Raised when a patch cannot be applied to a twin."""
    pass


class ConsistencyTimeoutError(AggregationError):
    """
    Raised when the store did not show the expected data in time.

    This is "not found yet", as opposed to a genuine absence which is
    reported as None or an empty result.

    Attributes:
        last_value: Last value observed before giving up
        attempts: Number of reads performed
    """

    def __init__(
        self,
        message: str,
        last_value: Any = None,
        attempts: int = 0,
        twin_id: Optional[str] = None
    ):
        self.last_value = last_value
        self.attempts = attempts
        super().__init__(f"{message} (after {attempts} attempts)", twin_id=twin_id)


class AmbiguousTwinError(AggregationError):
    """Raised when a lookup by id matches more than one twin."""

    def __init__(self, twin_id: str, count: int):
        self.count = count
        super().__init__(f"Expected one twin, query returned {count}", twin_id=twin_id)
