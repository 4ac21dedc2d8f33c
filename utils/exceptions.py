class AttendanceError(Exception):
    """Base error for attendance processing."""
    retryable = False


class SourceReadError(AttendanceError):
    """A catalog, settings, OD or punch read failed. The unit can be retried."""
    retryable = True


class NotFoundError(AttendanceError):
    pass


class InvalidStateError(AttendanceError):
    pass
