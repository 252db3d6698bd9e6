"""
Tests for the payments app.

This package contains test modules for:
- test_models.py: Payment, Refund, Payout and WebhookEvent model tests
- test_refund_service.py: RefundService tests
- test_locks.py: DistributedLock and check_version tests

Shared helpers:
- factories.py: factory_boy factories for payment records
- fakes.py: FakeProcessor, the recording processor used by every test

Usage:
    pytest payments/tests/
    pytest payments/tests/test_refund_service.py
"""
