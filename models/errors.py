class TimesheetError(Exception):
    pass


class InvalidRange(TimesheetError, ValueError):
    """Caller asked for a day or month that does not exist."""


class DataUnavailable(TimesheetError):
    """The punch store failed for one employee."""

    def __init__(self, employee_id: str, reason: str = ""):
        self.employee_id = employee_id
        self.reason = reason
        message = f"Punch data unavailable for employee_id: {employee_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
