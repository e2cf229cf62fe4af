"""Exception hierarchy for the check-in service."""


class AttendanceError(Exception):
    """Base class for check-in errors."""
    pass


class ValidationError(AttendanceError):
    """Malformed input. Never persisted."""
    pass


class SessionNotFoundError(AttendanceError):
    """Referenced session does not exist."""

    def __init__(self, session_id):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class GeofenceConfigurationError(AttendanceError):
    """Geofence radius or centre is unusable; checks fail closed."""
    pass


class ImmutableRecordError(AttendanceError):
    """A verified attendance record cannot be modified."""
    pass


class TransientStoreError(AttendanceError):
    """Store failure where the caller should retry the request."""
    pass
