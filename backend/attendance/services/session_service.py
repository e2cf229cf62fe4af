"""Session registry: creation, edits and the cached active flag."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import OperationalError

from attendance import db
from attendance.models.session import ClassSession
from attendance.services.geofence_service import GeofenceValidator
from attendance.services.lifecycle_service import SessionLifecycleEvaluator
from attendance.services.proof_service import TokenService
from attendance.utils.errors import GeofenceConfigurationError, SessionNotFoundError, ValidationError
from attendance.utils.helpers import retry_call, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'start_time', 'end_time', 'latitude', 'longitude', 'radius_m',
    'location_required', 'extra'
)


class SessionService:
    """Owns session writes. Every write recomputes is_active before commit."""

    def __init__(
        self,
        geofence: GeofenceValidator = None,
        token_ttl_seconds: int = 60,
        read_attempts: int = 3,
        backoff_seconds: float = 0.05
    ):
        self.geofence = geofence or GeofenceValidator()
        self.token_ttl_seconds = token_ttl_seconds
        self.read_attempts = read_attempts
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_config(cls, config) -> 'SessionService':
        return cls(
            geofence=GeofenceValidator.from_config(config),
            token_ttl_seconds=config.get('SESSION_TOKEN_TTL_SECONDS', 60),
            read_attempts=config.get('STORE_READ_ATTEMPTS', 3),
            backoff_seconds=config.get('STORE_RETRY_BACKOFF_SECONDS', 0.05)
        )

    def get_session(self, session_id: int) -> ClassSession:
        """Return the session or raise SessionNotFoundError."""
        session = retry_call(
            lambda: db.session.get(ClassSession, session_id),
            self.read_attempts, (OperationalError,), self.backoff_seconds,
            on_retry=db.session.rollback
        )
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def create_session(
        self,
        unit_id: str,
        lecturer_id: str,
        start_time: datetime,
        end_time: datetime,
        academic_year: str,
        semester: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_m: Optional[float] = None,
        location_required: bool = False,
        extra: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> ClassSession:
        """Create a session with fresh proof material."""
        now = now or utcnow()
        if not unit_id or not lecturer_id:
            raise ValidationError("unit_id and lecturer_id are required")
        if not academic_year or not semester:
            raise ValidationError("academic_year and semester are required")

        session = ClassSession(
            unit_id=unit_id,
            lecturer_id=lecturer_id,
            start_time=start_time,
            end_time=end_time,
            academic_year=academic_year,
            semester=semester,
            latitude=latitude,
            longitude=longitude,
            radius_m=radius_m,
            location_required=bool(location_required),
            backup_key=ClassSession.generate_backup_key(),
            extra=extra
        )
        self._validate(session)
        TokenService.issue(session, now, self.token_ttl_seconds)
        SessionLifecycleEvaluator.refresh_active_flag(session, now)

        db.session.add(session)
        db.session.commit()
        logger.info("Created session %s for unit %s", session.id, unit_id)
        return session

    def update_session(self, session_id: int, now: Optional[datetime] = None, **changes) -> ClassSession:
        """Edit time window, geofence or location requirement."""
        now = now or utcnow()
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        session = self.get_session(session_id)
        for key, value in changes.items():
            setattr(session, key, value)

        try:
            self._validate(session)
        except (ValidationError, GeofenceConfigurationError):
            db.session.rollback()
            raise

        SessionLifecycleEvaluator.refresh_active_flag(session, now)
        db.session.commit()
        return session

    def rotate_token(self, session_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Issue a new token and return it with its QR image."""
        now = now or utcnow()
        session = self.get_session(session_id)
        token, expires_at = TokenService.issue(session, now, self.token_ttl_seconds)
        SessionLifecycleEvaluator.refresh_active_flag(session, now)
        db.session.commit()

        return {
            'session_id': session.id,
            'token': token,
            'expires_at': expires_at.isoformat(),
            'qr_image': TokenService.render_qr(token)
        }

    @staticmethod
    def list_active_sessions() -> List[ClassSession]:
        """Fast listing from the cached flag. Not used for authorization."""
        return ClassSession.query.filter_by(is_active=True).order_by(ClassSession.start_time).all()

    @staticmethod
    def refresh_active_flags(now: Optional[datetime] = None) -> int:
        """Recompute the cached flag for every session; returns how many changed."""
        now = now or utcnow()
        changed = 0
        for session in ClassSession.query.all():
            if SessionLifecycleEvaluator.refresh_active_flag(session, now):
                changed += 1
        db.session.commit()
        return changed

    def _validate(self, session: ClassSession) -> None:
        if session.start_time is None or session.end_time is None:
            raise ValidationError("start_time and end_time are required")
        if session.end_time <= session.start_time:
            raise ValidationError("end_time must be after start_time")

        if session.location_required:
            if session.latitude is None or session.longitude is None:
                raise ValidationError("A geofence centre is required when location is required")
            if not (-90 <= session.latitude <= 90) or not (-180 <= session.longitude <= 180):
                raise ValidationError("Geofence centre is not a valid coordinate")
            self.geofence.check_radius(session.radius_m)
        elif session.radius_m is not None:
            self.geofence.check_radius(session.radius_m)
