"""Exceptions raised while running update jobs and reconciling their output."""

from typing import Any


class DependabotError(Exception):
    """Base exception for update job errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize update job error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EventDecodeError(DependabotError):
    """Raised when an output event payload does not match its declared type."""

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize event decode error.

        Args:
            message: Human-readable error message
            event_type: The ``type`` of the offending event
            details: Optional dictionary with additional error details
        """
        super().__init__(message, details)
        self.event_type = event_type


class EventSequenceError(DependabotError):
    """Raised when an event arrives out of emission order."""

    def __init__(self, sequence: int, last_sequence: int):
        super().__init__(
            f"Event #{sequence} received after event #{last_sequence}; "
            "events must be processed in emission order",
            {"sequence": sequence, "last_sequence": last_sequence},
        )
        self.sequence = sequence
        self.last_sequence = last_sequence


class DependabotCliError(DependabotError):
    """Raised when the update tool cannot be installed, run or read."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize update tool error.

        Args:
            message: Human-readable error message
            exit_code: Process exit code, if the tool ran
            details: Optional dictionary with additional error details
        """
        super().__init__(message, details)
        self.exit_code = exit_code
