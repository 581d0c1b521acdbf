# app/core/exceptions.py
"""
Scheduling engine error taxonomy.

Services raise these; the API layer maps the user-facing ones to HTTP
responses in app.main. UpstreamSyncError and DispatchError are absorbed by
the calendar sync and reminder batch and never reach a client.
"""


class BookingEngineError(Exception):
    """Base class for all scheduling engine errors"""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ValidationError(BookingEngineError):
    """Malformed input rejected before touching storage"""
    status_code = 400


class NotFoundError(BookingEngineError):
    """No matching practitioner, booking or session"""
    status_code = 404


class ConflictError(BookingEngineError):
    """The requested time conflicts with existing state"""
    status_code = 409
    hint = "Please refresh the available times and pick another slot."


class SlotNoLongerAvailable(ConflictError):
    """This time slot is no longer available"""


class UpstreamSyncError(BookingEngineError):
    """An external calendar could not be read"""

    def __init__(self, provider: str, message: str = ""):
        super().__init__(message)
        self.provider = provider


class DispatchError(BookingEngineError):
    """A notification could not be delivered"""

    def __init__(self, item_id, kind: str, message: str = ""):
        super().__init__(message)
        self.item_id = item_id
        self.kind = kind

    def __str__(self):
        return f"{self.kind} for {self.item_id}: {self.message}"
