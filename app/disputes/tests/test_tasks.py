"""Tests for dispute Celery tasks."""

from datetime import timedelta

import pytest
from django.utils import timezone

from disputes.models import Dispute, DisputePriority
from disputes.tasks import escalate_overdue_disputes_task
from disputes.tests.factories import DisputeFactory


@pytest.mark.django_db
class TestEscalateOverdueDisputesTask:
    def test_escalates_overdue(self):
        dispute = DisputeFactory(response_due_at=timezone.now() - timedelta(minutes=5))

        assert escalate_overdue_disputes_task() == 1
        assert Dispute.objects.get(pk=dispute.pk).priority == DisputePriority.URGENT

    def test_nothing_overdue(self):
        DisputeFactory()

        assert escalate_overdue_disputes_task() == 0
