"""
Retry with exponential backoff for persistence calls.

Transient failures (timeouts, I/O errors, an unavailable store) are retried
with jittered exponential backoff. Once attempts are exhausted the failure
surfaces as StoreUnavailable.
"""

import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from .alert import Alert
from .audit import AuditFilter, AuditLogEntry
from .errors import StoreUnavailable
from .logger import get_logger
from .store import Store
from .vehicle import Vehicle

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (StoreUnavailable, TimeoutError, OSError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: float = 0.1  # seconds before the first retry
    max_backoff: float = 2.0


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay before retrying after ``attempt`` failed attempts, with jitter."""
    base = min(policy.backoff * (2 ** (attempt - 1)), policy.max_backoff)
    return base * random.uniform(0.5, 1.5)


def retry_call(
    func: Callable[..., T],
    *args,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """Call ``func``, retrying transient failures according to ``policy``."""
    policy = policy or RetryPolicy()
    name = getattr(func, "__name__", repr(func))
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            if attempt >= max(policy.max_attempts, 1):
                logger.error(f"[STORE] {name} failed after {attempt} attempt(s): {exc}")
                raise StoreUnavailable(f"{name} failed after {attempt} attempt(s): {exc}") from exc
            delay = backoff_delay(policy, attempt)
            logger.warning(f"[STORE] {name} attempt {attempt} failed ({exc}); retrying in {delay:.2f}s")
            sleep(delay)
            attempt += 1


class RetryingStore(Store):
    """Store wrapper that applies ``retry_call`` to every operation."""

    def __init__(
        self,
        inner: Store,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inner = inner
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def _call(self, func: Callable[..., T], *args, **kwargs) -> T:
        return retry_call(func, *args, policy=self.policy, sleep=self.sleep, **kwargs)

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return self._call(self.inner.get_vehicle, vehicle_id)

    def list_vehicles(self) -> List[Vehicle]:
        return self._call(self.inner.list_vehicles)

    def put_vehicle(self, vehicle: Vehicle) -> None:
        self._call(self.inner.put_vehicle, vehicle)

    def delete_vehicle(self, vehicle_id: str) -> bool:
        return self._call(self.inner.delete_vehicle, vehicle_id)

    def list_alerts(
        self,
        owner_id: Optional[str] = None,
        only_unread: bool = False,
        vehicle_id: Optional[str] = None,
    ) -> List[Alert]:
        return self._call(self.inner.list_alerts, owner_id, only_unread, vehicle_id)

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._call(self.inner.get_alert, alert_id)

    def put_alert(self, alert: Alert) -> None:
        self._call(self.inner.put_alert, alert)

    def delete_alert(self, alert_id: str) -> bool:
        return self._call(self.inner.delete_alert, alert_id)

    def mark_alert_read(self, alert_id: str) -> bool:
        return self._call(self.inner.mark_alert_read, alert_id)

    def append_audit_entry(self, entry: AuditLogEntry) -> None:
        self._call(self.inner.append_audit_entry, entry)

    def list_audit_entries(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditLogEntry]:
        return self._call(self.inner.list_audit_entries, audit_filter)
