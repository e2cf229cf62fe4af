"""Class session with its time window, geofence and proof material."""
import secrets
from attendance import db
from attendance.models.base import BaseModel
from attendance.services.checkin_types import AcademicPeriod


class ClassSession(BaseModel):
    """A timed attendance window for one unit, opened by a lecturer."""

    __tablename__ = 'attendance_sessions'

    unit_id = db.Column(db.String(64), nullable=False, index=True)
    lecturer_id = db.Column(db.String(64), nullable=False, index=True)

    # Window [start_time, end_time), naive UTC
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)

    # Academic period
    academic_year = db.Column(db.String(20), nullable=False)
    semester = db.Column(db.String(20), nullable=False)

    # Geofence
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    radius_m = db.Column(db.Float, nullable=True)
    location_required = db.Column(db.Boolean, default=False, nullable=False)

    # Proof material
    token = db.Column(db.String(128), nullable=False)
    token_expires_at = db.Column(db.DateTime, nullable=True)
    backup_key = db.Column(db.String(32), nullable=True)

    # Listing hint only, recomputed on every write
    is_active = db.Column(db.Boolean, default=False, nullable=False, index=True)

    # Free-form extension data, never read by the decision pipeline
    extra = db.Column(db.JSON, nullable=True)

    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    @staticmethod
    def generate_token() -> str:
        """Generate an unguessable session token."""
        return secrets.token_urlsafe(32)

    @staticmethod
    def generate_backup_key() -> str:
        """Generate a short key lecturers can read out loud."""
        return secrets.token_hex(3).upper()

    @property
    def period(self) -> AcademicPeriod:
        return AcademicPeriod(year=self.academic_year, semester=self.semester)

    def to_dict(self, include_secrets: bool = False):
        """Convert to dictionary."""
        exclude = [] if include_secrets else ['token', 'backup_key']
        return super().to_dict(exclude=exclude)

    def __repr__(self):
        return f'<ClassSession {self.id} unit={self.unit_id}>'
