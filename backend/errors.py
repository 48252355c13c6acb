class TimesheetError(Exception):
    """Base exception for timesheet business rule violations."""


class ValidationError(TimesheetError):
    """Raised when input data is invalid or violates timesheet rules."""


class NotFoundError(TimesheetError):
    """Raised when a referenced timesheet or clock session does not exist."""


class ClockSessionError(TimesheetError):
    """Raised when a clock session is not in a state that allows the action."""
