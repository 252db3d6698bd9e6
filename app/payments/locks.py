"""
Concurrency control for booking and money operations.

Two complementary mechanisms:

1. **DistributedLock** - Redis mutual exclusion across worker processes.
   Used around worker-driven per-booking jobs (settlement, timeouts,
   payouts) so two Celery workers never run the same job concurrently.

2. **check_version** - Optimistic version check plus row lock for API
   callers that send the version they last saw.

Transitions on different bookings never contend: every lock key is
scoped to one booking (or one payout).

Usage:
    from payments.locks import booking_lock, check_version

    with booking_lock(booking.id):
        SettlementOrchestrator.settle_booking(booking.id)

    with transaction.atomic():
        booking = check_version(Booking, booking_id, expected_version=3)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock with TTL and owner token.

    The TTL frees the lock if the holder crashes; the token makes sure a
    process only ever releases a lock it acquired.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before the lock frees itself
        blocking: Wait for the lock instead of failing immediately
        timeout: Maximum wait in blocking mode

    Raises:
        LockAcquisitionError: Lock not obtained (immediately or within timeout)
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def _try_acquire(self, token: str) -> bool:
        return bool(self._get_redis().set(self.key, token, nx=True, ex=self.ttl))

    def acquire(self) -> bool:
        token = str(uuid_module.uuid4())

        if not self.blocking:
            if not self._try_acquire(token):
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            self._token = token
            return True

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._try_acquire(token):
                self._token = token
                return True
            time.sleep(0.05)

        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """Release the lock if this instance holds it. Safe to call twice."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the TTL for long-running jobs."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False


def booking_lock(booking_id: Any, blocking: bool = True) -> DistributedLock:
    """Per-booking lock shared by every worker job that mutates a booking."""
    return DistributedLock(
        f"booking:{booking_id}",
        ttl=getattr(settings, "BOOKING_LOCK_TTL_SECONDS", 60),
        blocking=blocking,
        timeout=getattr(settings, "BOOKING_LOCK_TIMEOUT_SECONDS", 10.0),
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row for update, failing if its version moved on.

    Must run inside ``transaction.atomic()``; the row lock is held until
    the outer transaction ends.

    Raises:
        StaleRecordError: Version differs from ``expected_version``
        NotFoundError: Row does not exist
    """
    model_name = model_class.__name__
    with transaction.atomic():
        instance = model_class.objects.select_for_update().filter(pk=pk).first()
        if instance is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )
        if instance.version != expected_version:
            raise StaleRecordError(
                f"{model_name} {pk} has been modified "
                f"(expected version {expected_version}, current {instance.version})",
                details={
                    "pk": str(pk),
                    "expected_version": expected_version,
                    "current_version": instance.version,
                },
            )
        return instance


__all__ = [
    "DistributedLock",
    "booking_lock",
    "check_version",
]
