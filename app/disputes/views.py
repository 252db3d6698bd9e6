"""
ViewSets for the disputes API.

Parties open disputes, read them and add responses; staff run the
workflow and resolve. Errors are raised as domain exceptions and rendered
by core.views.api_exception_handler.
"""

from __future__ import annotations

from django.db.models import Q
from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings.permissions import is_staff, user_uuid
from disputes.models import Dispute
from disputes.permissions import IsDisputeParty, IsStaff
from disputes.serializers import (
    DisputeAssignSerializer,
    DisputeCloseSerializer,
    DisputeCreateSerializer,
    DisputeResolutionSerializer,
    DisputeResolveSerializer,
    DisputeResponseCreateSerializer,
    DisputeResponseSerializer,
    DisputeSerializer,
    DisputeWorkflowSerializer,
)
from disputes.services import DisputeService

WORKFLOW_STEPS = {
    "investigate": DisputeService.start_investigation,
    "request_response": DisputeService.request_response,
    "mediate": DisputeService.start_mediation,
}


@extend_schema_view(
    list=extend_schema(
        operation_id="list_disputes",
        summary="List disputes",
        tags=["Disputes"],
    ),
    create=extend_schema(
        operation_id="open_dispute",
        summary="Open a dispute on a booking",
        request=DisputeCreateSerializer,
        responses={
            201: DisputeSerializer,
            409: OpenApiResponse(description="Booking not disputable or already disputed"),
        },
        tags=["Disputes"],
    ),
    retrieve=extend_schema(
        operation_id="get_dispute",
        summary="Get dispute",
        tags=["Disputes"],
    ),
)
class DisputeViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for dispute operations.

    list:
        Disputes the caller is a party to (all for staff). Staff may filter
        with ``?status=``.

    create:
        Open a dispute with the caller as initiator.
    """

    serializer_class = DisputeSerializer
    permission_classes = [IsAuthenticated, IsDisputeParty]

    def get_permissions(self):
        if self.action in ("assign", "workflow", "resolve", "stats"):
            return [IsAuthenticated(), IsStaff()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = Dispute.objects.prefetch_related("responses")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if is_staff(self.request.user):
            return queryset
        party_id = user_uuid(self.request.user)
        return queryset.filter(Q(initiator_id=party_id) | Q(defendant_id=party_id))

    def create(self, request, *args, **kwargs):
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dispute = DisputeService.open_dispute(initiator_id=user_uuid(request.user), **serializer.validated_data)
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="add_dispute_response",
        summary="Add a statement or evidence",
        request=DisputeResponseCreateSerializer,
        responses={201: DisputeResponseSerializer},
        tags=["Disputes"],
    )
    @action(detail=True, methods=["post"])
    def responses(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeResponseCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        response = DisputeService.add_response(
            dispute.id,
            author_id=user_uuid(request.user),
            **serializer.validated_data,
        )
        return Response(DisputeResponseSerializer(response).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="assign_dispute",
        summary="Assign a reviewer (staff)",
        request=DisputeAssignSerializer,
        responses={200: DisputeSerializer},
        tags=["Disputes"],
    )
    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        assignee_id = serializer.validated_data.get("assignee_id") or user_uuid(request.user)
        dispute = DisputeService.assign(dispute.id, assignee_id)
        return Response(DisputeSerializer(dispute).data)

    @extend_schema(
        operation_id="advance_dispute",
        summary="Apply a workflow step (staff)",
        request=DisputeWorkflowSerializer,
        responses={
            200: DisputeSerializer,
            409: OpenApiResponse(description="Step not allowed from the current status"),
        },
        tags=["Disputes"],
    )
    @action(detail=True, methods=["post"])
    def workflow(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeWorkflowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dispute = WORKFLOW_STEPS[serializer.validated_data["step"]](dispute.id)
        return Response(DisputeSerializer(dispute).data)

    @extend_schema(
        operation_id="resolve_dispute",
        summary="Resolve a dispute (staff)",
        request=DisputeResolveSerializer,
        responses={
            200: DisputeResolutionSerializer,
            409: OpenApiResponse(description="Dispute already ended"),
            422: OpenApiResponse(description="Amounts do not fit the outcome or the deposit"),
        },
        tags=["Disputes"],
    )
    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resolution = DisputeService.resolve_dispute(
            dispute.id,
            resolved_by=user_uuid(request.user),
            **serializer.validated_data,
        )
        return Response(DisputeResolutionSerializer(resolution).data)

    @extend_schema(
        operation_id="close_dispute",
        summary="Withdraw (initiator) or close (staff) a dispute",
        request=DisputeCloseSerializer,
        responses={200: DisputeResolutionSerializer},
        tags=["Disputes"],
    )
    @action(detail=True, methods=["post"])
    def close(self, request, pk=None):
        dispute = self.get_object()
        serializer = DisputeCloseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resolution = DisputeService.close_dispute(
            dispute.id,
            closed_by=user_uuid(request.user),
            reason=serializer.validated_data["reason"],
            is_admin=is_staff(request.user),
        )
        return Response(DisputeResolutionSerializer(resolution).data)

    @extend_schema(
        operation_id="dispute_stats",
        summary="Dispute counts by status (staff)",
        responses={200: OpenApiResponse(description="Totals, overdue count and counts per status")},
        tags=["Disputes"],
    )
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(DisputeService.get_dispute_stats())
