#!/usr/bin/env python3
"""Tests for retry with backoff."""

import pytest

from compliance import RetryingStore, RetryPolicy, StoreUnavailable, ValidationError
from compliance.retry import backoff_delay, retry_call


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls."""

    def __init__(self, failures, error=OSError("busy")):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self, value=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestRetryCall:
    """Tests for retry_call."""

    def test_succeeds_after_transient_failures(self):
        sleeps = []
        func = Flaky(2)
        assert retry_call(func, "ok", policy=RetryPolicy(max_attempts=3), sleep=sleeps.append) == "ok"
        assert func.calls == 3
        assert len(sleeps) == 2

    def test_exhaustion_raises_store_unavailable(self):
        func = Flaky(5, TimeoutError("slow"))
        with pytest.raises(StoreUnavailable):
            retry_call(func, policy=RetryPolicy(max_attempts=3), sleep=lambda s: None)
        assert func.calls == 3

    def test_non_transient_error_not_retried(self):
        func = Flaky(1, ValidationError("bad"))
        with pytest.raises(ValidationError):
            retry_call(func, sleep=lambda s: None)
        assert func.calls == 1

    def test_backoff_grows_and_is_capped(self):
        policy = RetryPolicy(backoff=0.1, max_backoff=0.3)
        assert 0.05 <= backoff_delay(policy, 1) <= 0.15
        assert 0.1 <= backoff_delay(policy, 2) <= 0.3
        assert backoff_delay(policy, 10) <= 0.45


class TestRetryingStore:
    """Tests for RetryingStore delegation."""

    def test_retries_inner_store(self, store):
        sleeps = []
        calls = []
        original = store.list_vehicles

        def flaky_list():
            calls.append(1)
            if len(calls) == 1:
                raise StoreUnavailable("locked")
            return original()

        store.list_vehicles = flaky_list
        retrying = RetryingStore(store, RetryPolicy(max_attempts=2), sleep=sleeps.append)
        assert retrying.list_vehicles() == []
        assert len(calls) == 2
        assert len(sleeps) == 1

    def test_delegates_reads(self, store):
        retrying = RetryingStore(store, sleep=lambda s: None)
        assert retrying.get_vehicle("missing") is None
        assert retrying.list_alerts(owner_id="alice") == []
        assert retrying.list_audit_entries() == []
