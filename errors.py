class HabitTrackerError(Exception):
    """Base class for errors raised by the habit tracker."""


class NotAuthorized(HabitTrackerError):
    """The habit or entry does not exist or belongs to another user.

    Both cases are reported the same way so callers learn nothing about
    habits they do not own.
    """

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)
        self.message = message


class BackendError(HabitTrackerError):
    """A read or write against the backing store failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
