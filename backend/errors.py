# errors.py
"""
Domain errors raised by the timer store and reconciler.
main.py maps them onto HTTP responses.
"""


class TimerError(Exception):
    """Base class for timer errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TimerError):
    """Missing or invalid input at registration"""

    status_code = 422


class NotFoundError(TimerError):
    """Timer id does not exist"""

    status_code = 404


class StorageError(TimerError):
    """Underlying database read/write failed"""

    status_code = 500
