"""Enrollment tables: the authoritative primary and its listing projection."""
import enum
from attendance import db
from attendance.models.base import BaseModel


class EnrollmentStatus(enum.Enum):
    """Registration status of a primary enrollment row."""
    PENDING = 'pending'
    ACTIVE = 'active'
    WITHDRAWN = 'withdrawn'


class Enrollment(BaseModel):
    """Primary, authoritative student-unit-period membership."""

    __tablename__ = 'student_units'
    __table_args__ = (
        db.Index('ix_student_units_tuple', 'student_id', 'unit_id', 'academic_year', 'semester'),
    )

    student_id = db.Column(db.String(64), nullable=False)
    unit_id = db.Column(db.String(64), nullable=False)
    academic_year = db.Column(db.String(20), nullable=False)
    semester = db.Column(db.String(20), nullable=False)
    status = db.Column(db.Enum(EnrollmentStatus), nullable=False, default=EnrollmentStatus.PENDING)
    registered_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return (f'<Enrollment {self.student_id} {self.unit_id} '
                f'{self.academic_year}/{self.semester} {self.status.value}>')


class EnrollmentProjection(BaseModel):
    """Read-optimized copy of active enrollments, for listings and reports only."""

    __tablename__ = 'student_registered_units'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'unit_id', 'academic_year', 'semester',
                            name='uq_registered_unit'),
    )

    student_id = db.Column(db.String(64), nullable=False, index=True)
    unit_id = db.Column(db.String(64), nullable=False, index=True)
    academic_year = db.Column(db.String(20), nullable=False)
    semester = db.Column(db.String(20), nullable=False)
    registered_at = db.Column(db.DateTime, nullable=True)
