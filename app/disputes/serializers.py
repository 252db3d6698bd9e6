"""
DRF serializers for the disputes app.

Related files:
    - models.py: Dispute, DisputeResponse, DisputeResolution
    - views.py: DisputeViewSet
"""

from __future__ import annotations

from rest_framework import serializers

from core.serializer_mixins import AuditFieldsMixin
from disputes.models import (
    Dispute,
    DisputeResolution,
    DisputeResponse,
    DisputeType,
    ResolutionOutcome,
)


class DisputeCreateSerializer(serializers.Serializer):
    """Request body for opening a dispute; the caller is the initiator."""

    booking_id = serializers.UUIDField()
    dispute_type = serializers.ChoiceField(choices=DisputeType.choices)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    description = serializers.CharField(max_length=5000)
    claimed_amount_cents = serializers.IntegerField(min_value=0, default=0)
    evidence = serializers.ListField(child=serializers.URLField(), required=False, default=list)


class DisputeResponseCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=5000)
    evidence = serializers.ListField(child=serializers.URLField(), required=False, default=list)


class DisputeAssignSerializer(serializers.Serializer):
    assignee_id = serializers.UUIDField(required=False)


class DisputeWorkflowSerializer(serializers.Serializer):
    """Staff workflow step other than assignment and resolution."""

    STEPS = ("investigate", "request_response", "mediate")

    step = serializers.ChoiceField(choices=STEPS)


class DisputeResolveSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=ResolutionOutcome.choices)
    refund_amount_cents = serializers.IntegerField(min_value=0, default=0)
    payout_adjustment_cents = serializers.IntegerField(default=0)
    notes = serializers.CharField(max_length=5000, required=False, allow_blank=True, default="")


class DisputeCloseSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")


class DisputeResponseSerializer(serializers.ModelSerializer):
    class Meta:
        model = DisputeResponse
        fields = ["id", "author_id", "message", "evidence", "created_at"]
        read_only_fields = fields


class DisputeResolutionSerializer(serializers.ModelSerializer):
    class Meta:
        model = DisputeResolution
        fields = [
            "id",
            "outcome",
            "refund_amount_cents",
            "payout_adjustment_cents",
            "booking_status",
            "resolved_by",
            "notes",
            "posting_ids",
            "resolved_at",
        ]
        read_only_fields = fields


class DisputeSerializer(AuditFieldsMixin, serializers.ModelSerializer):
    """Dispute with its responses and, once ended, its resolution."""

    responses = DisputeResponseSerializer(many=True, read_only=True)
    resolution = serializers.SerializerMethodField()
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "booking_id",
            "initiator_id",
            "defendant_id",
            "initiator_role",
            "dispute_type",
            "title",
            "description",
            "claimed_amount_cents",
            "currency",
            "evidence",
            "status",
            "priority",
            "response_due_at",
            "first_response_at",
            "escalated_at",
            "assigned_to",
            "resolved_at",
            "is_overdue",
            "version",
            "responses",
            "resolution",
        ]
        read_only_fields = fields

    def get_resolution(self, obj: Dispute) -> dict | None:
        resolution = DisputeResolution.objects.filter(dispute=obj).first()
        if resolution is None:
            return None
        return DisputeResolutionSerializer(resolution).data
