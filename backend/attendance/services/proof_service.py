"""Proof-of-session: session tokens, backup keys and attempt counting."""
import base64
import hmac
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

import qrcode
import redis
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from attendance import db
from attendance.models.attempt_counter import ProofAttemptCounter
from attendance.services.checkin_types import OutcomeStatus, Proof, ProofType

logger = logging.getLogger(__name__)


@dataclass
class ProofResult:
    """status is None when the proof is accepted."""
    status: Optional[OutcomeStatus]
    message: str

    @property
    def accepted(self) -> bool:
        return self.status is None


class DatabaseAttemptCounter:
    """Fixed-window counter kept in proof_attempt_counters.

    Every path is a single conditional statement, so two concurrent attempts
    can never both be admitted at the limit.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 600):
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)

    def try_acquire(self, student_id: str, session_id: int, now: datetime) -> bool:
        """Count one attempt. Returns False when the window's limit is reached. Commits."""
        window_floor = now - self.window
        key = (ProofAttemptCounter.student_id == student_id,
               ProofAttemptCounter.session_id == session_id)

        for _ in range(3):
            # Open window with room left
            admitted = self._update(update(ProofAttemptCounter).where(
                *key,
                ProofAttemptCounter.window_started_at > window_floor,
                ProofAttemptCounter.attempts < self.max_attempts
            ).values(attempts=ProofAttemptCounter.attempts + 1, updated_at=now))
            if admitted:
                db.session.commit()
                return True

            # Window elapsed: start a new one
            restarted = self._update(update(ProofAttemptCounter).where(
                *key,
                ProofAttemptCounter.window_started_at <= window_floor
            ).values(attempts=1, window_started_at=now, updated_at=now))
            if restarted:
                db.session.commit()
                return True

            if db.session.query(ProofAttemptCounter.id).filter(*key).first() is not None:
                db.session.commit()
                return False

            try:
                db.session.add(ProofAttemptCounter(
                    student_id=student_id,
                    session_id=session_id,
                    window_started_at=now,
                    attempts=1,
                    created_at=now,
                    updated_at=now
                ))
                db.session.commit()
                return True
            except IntegrityError:
                # A concurrent first attempt created the row; go round again
                db.session.rollback()

        logger.warning("Attempt counter contention for student=%s session=%s", student_id, session_id)
        return False

    @staticmethod
    def _update(statement) -> bool:
        result = db.session.execute(statement.execution_options(synchronize_session=False))
        return result.rowcount == 1


class RedisAttemptCounter:
    """Fixed-window counter in Redis using INCR with EXPIRE NX."""

    KEY_PREFIX = 'checkin:backup-key'

    def __init__(self, client, max_attempts: int = 5, window_seconds: int = 600):
        self.client = client
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs) -> 'RedisAttemptCounter':
        return cls(redis.Redis.from_url(url), **kwargs)

    def try_acquire(self, student_id: str, session_id: int, now: datetime) -> bool:
        key = f"{self.KEY_PREFIX}:{session_id}:{student_id}"
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.window_seconds, nx=True)
        count, _ = pipe.execute()
        return int(count) <= self.max_attempts


def build_attempt_counter(config):
    """Pick the counter backend named by ATTEMPT_COUNTER_BACKEND."""
    options = dict(
        max_attempts=config.get('BACKUP_KEY_MAX_ATTEMPTS', 5),
        window_seconds=config.get('BACKUP_KEY_WINDOW_SECONDS', 600)
    )
    if config.get('ATTEMPT_COUNTER_BACKEND') == 'redis':
        url = config.get('REDIS_URL')
        if not url:
            raise ValueError("ATTEMPT_COUNTER_BACKEND is 'redis' but REDIS_URL is not set")
        return RedisAttemptCounter.from_url(url, **options)
    return DatabaseAttemptCounter(**options)


class ProofVerifier:
    """Checks the scanned token or backup key against the session."""

    def __init__(self, counter=None):
        self.counter = counter or DatabaseAttemptCounter()

    @classmethod
    def from_config(cls, config) -> 'ProofVerifier':
        return cls(build_attempt_counter(config))

    def verify(self, session, student_id: str, proof: Proof, now: datetime) -> ProofResult:
        if proof.type is ProofType.TOKEN:
            return self._verify_token(session, proof.value, now)
        return self._verify_backup_key(session, student_id, proof.value, now)

    @staticmethod
    def _verify_token(session, value: str, now: datetime) -> ProofResult:
        if not session.token or not hmac.compare_digest(session.token.encode(), value.encode()):
            return ProofResult(OutcomeStatus.INVALID_PROOF, "Invalid session code")
        if session.token_expires_at is not None and now >= session.token_expires_at:
            return ProofResult(OutcomeStatus.INVALID_PROOF, "Session code has expired, scan the current one")
        return ProofResult(None, "Session code accepted")

    def _verify_backup_key(self, session, student_id: str, value: str, now: datetime) -> ProofResult:
        # Counted before comparison so guessing is throttled whatever the key
        if not self.counter.try_acquire(student_id, session.id, now):
            return ProofResult(OutcomeStatus.RATE_LIMITED,
                               "Too many backup key attempts, try again later")
        if not session.backup_key or not hmac.compare_digest(
                session.backup_key.upper().encode(), value.strip().upper().encode()):
            return ProofResult(OutcomeStatus.INVALID_PROOF, "Invalid backup key")
        return ProofResult(None, "Backup key accepted")


class TokenService:
    """Issues rotating session tokens and renders them as QR images."""

    @staticmethod
    def issue(session, now: datetime, ttl_seconds: int = 60) -> Tuple[str, datetime]:
        """Replace the session token. Caller commits."""
        session.token = session.generate_token()
        session.token_expires_at = now + timedelta(seconds=ttl_seconds)
        return session.token, session.token_expires_at

    @staticmethod
    def render_qr(token: str) -> str:
        """Render a token as a base64 PNG data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
