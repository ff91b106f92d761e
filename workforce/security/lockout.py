"""
Lockout Policy - Bloqueo por intentos fallidos
Failed-attempt counting shared by kiosk PINs and back-office logins.

State lives on the credential row (``failed_attempts`` / ``locked_until``),
so a lockout survives restarts and is shared by every kiosk.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class LockoutPolicy:
    """
    Lock a credential after ``max_attempts`` consecutive failures.

    Records passed to the methods only need ``failed_attempts`` and
    ``locked_until`` attributes.
    """

    max_attempts: int = 3
    lockout: timedelta = timedelta(minutes=15)

    def is_locked(self, record, now: datetime) -> bool:
        return record.locked_until is not None and record.locked_until > now

    def remaining_seconds(self, record, now: datetime) -> int:
        if not self.is_locked(record, now):
            return 0
        return int((record.locked_until - now).total_seconds())

    def remaining_attempts(self, record) -> int:
        return max(0, self.max_attempts - (record.failed_attempts or 0))

    def release_if_expired(self, record, now: datetime) -> bool:
        """Clear an elapsed lockout. Returns True when something changed."""
        if record.locked_until is not None and record.locked_until <= now:
            record.locked_until = None
            record.failed_attempts = 0
            return True
        return False

    def register_failure(self, record, now: datetime) -> Optional[datetime]:
        """
        Count one failure and lock when the threshold is reached.

        Returns:
            The new ``locked_until`` when this failure triggered a lock,
            otherwise None.
        """
        record.failed_attempts = (record.failed_attempts or 0) + 1
        if record.failed_attempts >= self.max_attempts:
            record.locked_until = now + self.lockout
            return record.locked_until
        return None

    def register_success(self, record) -> None:
        record.failed_attempts = 0
        record.locked_until = None
