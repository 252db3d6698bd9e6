"""
Celery tasks for the dispute workflow.

Usage:
    from disputes.tasks import escalate_overdue_disputes_task

    escalate_overdue_disputes_task.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from disputes.services import DisputeService

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def escalate_overdue_disputes_task() -> int:
    """
    Escalate disputes whose response SLA passed without a response.

    Scheduled by celery beat; each dispute is escalated at most once.
    """
    count = DisputeService.escalate_overdue_disputes()
    if count:
        logger.info("Overdue dispute scan finished", extra={"escalated": count})
    return count
