"""Append-only attendance ledger."""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from attendance import db
from attendance.models.attendance import SUCCESS, AttendanceRecord, AttendanceRejection
from attendance.services.checkin_types import OutcomeStatus
from attendance.utils.errors import TransientStoreError

logger = logging.getLogger(__name__)

_CONFLICT_INSERTS = {
    'sqlite': sqlite_insert,
    'postgresql': pg_insert,
}


class AttendanceLedger:
    """At most one SUCCESS record per (student, session).

    Writes are conditional inserts; the unique constraint decides races and a
    lost race comes back as the winning record, never as a raw error.
    """

    @staticmethod
    def find_success(student_id: str, session_id: int) -> Optional[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(
            student_id=student_id,
            session_id=session_id,
            status=SUCCESS
        ).first()

    @classmethod
    def append_success(
        cls,
        student_id: str,
        session_id: int,
        now: datetime,
        distance_m: Optional[float] = None,
        verification_notes: Optional[str] = None,
        suspicion_score: float = 0.0
    ) -> Tuple[AttendanceRecord, bool]:
        """Insert only if absent. Returns (record, created). Caller commits."""
        values = dict(
            student_id=student_id,
            session_id=session_id,
            status=SUCCESS,
            distance_m=distance_m,
            verification_notes=verification_notes,
            suspicion_score=suspicion_score,
            created_at=now,
            updated_at=now
        )

        dialect = db.session.get_bind().dialect.name
        conflict_insert = _CONFLICT_INSERTS.get(dialect)
        if conflict_insert is not None:
            statement = conflict_insert(AttendanceRecord).values(**values).on_conflict_do_nothing(
                index_elements=['student_id', 'session_id']
            )
            created = db.session.execute(statement).rowcount == 1
        else:
            created = cls._plain_insert(values)

        record = cls.find_success(student_id, session_id)
        if record is None:
            # The row that blocked the insert is not a SUCCESS row
            logger.error(
                "Data integrity: ledger conflict for student=%s session=%s with no SUCCESS row",
                student_id, session_id
            )
            raise TransientStoreError("Attendance could not be confirmed, please retry")
        return record, created

    @staticmethod
    def _plain_insert(values) -> bool:
        try:
            with db.session.begin_nested():
                db.session.execute(insert(AttendanceRecord).values(**values))
            return True
        except IntegrityError:
            return False

    @staticmethod
    def record_rejection(
        student_id: str,
        session_id: int,
        status: OutcomeStatus,
        message: str,
        now: datetime,
        distance_m: Optional[float] = None,
        verification_notes: Optional[str] = None
    ) -> AttendanceRejection:
        """Add a REJECTED audit row to the current transaction."""
        rejection = AttendanceRejection(
            student_id=student_id,
            session_id=session_id,
            status=status.value,
            message=message,
            distance_m=distance_m,
            verification_notes=verification_notes,
            created_at=now,
            updated_at=now
        )
        db.session.add(rejection)
        return rejection

    @staticmethod
    def records_for_session(session_id: int) -> List[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(session_id=session_id).order_by(
            AttendanceRecord.created_at, AttendanceRecord.id
        ).all()

    @staticmethod
    def rejections_for_session(session_id: int) -> List[AttendanceRejection]:
        return AttendanceRejection.query.filter_by(session_id=session_id).order_by(
            AttendanceRejection.created_at, AttendanceRejection.id
        ).all()
