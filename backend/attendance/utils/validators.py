"""Validation utilities for incoming payloads."""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from attendance.services.checkin_types import (
    CheckinAttempt, DeviceInfo, LocationFix, Proof, ProofType,
)
from attendance.utils.errors import ValidationError
from attendance.utils.helpers import to_naive_utc


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def parse_datetime(value: Any, field: str, required: bool = True) -> Optional[datetime]:
        """Parse an ISO-8601 string into naive UTC."""
        if value in (None, ''):
            if required:
                raise ValidationError(f"{field} is required")
            return None
        if isinstance(value, datetime):
            return to_naive_utc(value)
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be an ISO-8601 timestamp")
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 timestamp")
        return to_naive_utc(parsed)

    @staticmethod
    def parse_float(value: Any, field: str, required: bool = False) -> Optional[float]:
        if value is None:
            if required:
                raise ValidationError(f"{field} is required")
            return None
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number")
        if not math.isfinite(number):
            raise ValidationError(f"{field} must be a finite number")
        return number

    @staticmethod
    def parse_flag(value: Any, field: str) -> bool:
        """Accept only a JSON boolean; a missing value means False."""
        if value is None:
            return False
        if not isinstance(value, bool):
            raise ValidationError(f"{field} must be a boolean")
        return value

    @staticmethod
    def parse_checkin_attempt(data: Any, source_ip: str = None) -> CheckinAttempt:
        """Build a CheckinAttempt from a request body, failing fast on malformed input."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        result = Validator.validate_required_fields(data, ['student_id', 'session_id', 'proof'])
        if not result['is_valid']:
            raise ValidationError("; ".join(result['errors']))

        student_id = str(data['student_id']).strip()
        if not student_id:
            raise ValidationError("student_id is required")

        try:
            session_id = int(data['session_id'])
        except (TypeError, ValueError):
            raise ValidationError("session_id must be an integer")

        proof_data = data['proof']
        if not isinstance(proof_data, dict):
            raise ValidationError("proof must be an object")
        try:
            proof_type = ProofType(str(proof_data.get('type', '')).upper())
        except ValueError:
            raise ValidationError("proof.type must be TOKEN or BACKUP_KEY")
        proof_value = proof_data.get('value')
        if not isinstance(proof_value, str) or not proof_value:
            raise ValidationError("proof.value is required")

        location = None
        location_data = data.get('location')
        if location_data is not None:
            if not isinstance(location_data, dict):
                raise ValidationError("location must be an object")
            latitude = Validator.parse_float(location_data.get('lat'), 'location.lat')
            longitude = Validator.parse_float(location_data.get('lon'), 'location.lon')
            if latitude is not None and not -90 <= latitude <= 90:
                raise ValidationError("location.lat must be between -90 and 90")
            if longitude is not None and not -180 <= longitude <= 180:
                raise ValidationError("location.lon must be between -180 and 180")
            location = LocationFix(
                latitude=latitude,
                longitude=longitude,
                accuracy_m=Validator.parse_float(location_data.get('accuracy_m'), 'location.accuracy_m'),
                is_mock=Validator.parse_flag(location_data.get('is_mock'), 'location.is_mock'),
                timed_out=Validator.parse_flag(location_data.get('timed_out'), 'location.timed_out')
            )

        device_data = data.get('device') or {}
        if not isinstance(device_data, dict):
            raise ValidationError("device must be an object")
        device = DeviceInfo(
            fingerprint=device_data.get('fingerprint') or None,
            platform=device_data.get('platform') or None,
            client_timestamp=Validator.parse_datetime(
                device_data.get('client_timestamp'), 'device.client_timestamp', required=False
            )
        )

        return CheckinAttempt(
            student_id=student_id,
            session_id=session_id,
            proof=Proof(type=proof_type, value=proof_value),
            location=location,
            device=device,
            source_ip=source_ip
        )
