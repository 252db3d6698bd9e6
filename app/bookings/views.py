"""
ViewSets for the bookings API.

URL Structure:
    /api/v1/bookings/                    GET, POST   (createBooking)
    /api/v1/bookings/{id}/               GET
    /api/v1/bookings/{id}/transitions/   POST        (transition)
    /api/v1/bookings/{id}/payment/       POST        (complete payment)
    /api/v1/bookings/{id}/ledger/        GET         (getLedger)
    /api/v1/bookings/{id}/history/       GET

Errors are raised as domain exceptions and rendered by
core.views.api_exception_handler.
"""

from __future__ import annotations

from django.db.models import Q
from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings.models import Booking
from bookings.payments import PaymentService
from bookings.permissions import IsBookingParty, actor_for, is_staff, user_uuid
from bookings.serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingStateHistorySerializer,
    LedgerEntrySerializer,
    PaymentRequestSerializer,
    TransitionRequestSerializer,
)
from bookings.services import BookingService, BookingStateMachine


@extend_schema_view(
    list=extend_schema(
        operation_id="list_bookings",
        summary="List bookings",
        tags=["Bookings"],
    ),
    create=extend_schema(
        operation_id="create_booking",
        summary="Create booking",
        request=BookingCreateSerializer,
        responses={201: BookingSerializer},
        tags=["Bookings"],
    ),
    retrieve=extend_schema(
        operation_id="get_booking",
        summary="Get booking",
        tags=["Bookings"],
    ),
)
class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for booking operations.

    list:
        Bookings where the caller is the renter or the owner (all for staff).

    create:
        Create a DRAFT booking with the caller as renter.

    retrieve:
        Booking details with the actions available to the caller.
    """

    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, IsBookingParty]

    def get_queryset(self):
        queryset = Booking.objects.all()
        if is_staff(self.request.user):
            return queryset
        party_id = user_uuid(self.request.user)
        return queryset.filter(Q(renter_id=party_id) | Q(owner_id=party_id))

    def retrieve(self, request, *args, **kwargs):
        booking = self.get_object()
        return Response(BookingSerializer(booking, context={"role": actor_for(request, booking).role}).data)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = BookingService.create_booking(renter_id=user_uuid(request.user), **serializer.validated_data)
        return Response(
            BookingSerializer(booking, context={"role": "renter"}).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="transition_booking",
        summary="Apply a lifecycle action",
        request=TransitionRequestSerializer,
        responses={
            200: BookingSerializer,
            403: OpenApiResponse(description="Caller may not request this action"),
            409: OpenApiResponse(description="Invalid transition or stale version"),
            422: OpenApiResponse(description="Side effect failed; nothing was applied"),
        },
        tags=["Bookings"],
    )
    @action(detail=True, methods=["post"], url_path="transitions")
    def transitions(self, request, pk=None):
        booking = self.get_object()
        serializer = TransitionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor = actor_for(request, booking)
        booking = BookingStateMachine.transition(
            booking.id,
            serializer.validated_data["action"],
            actor,
            reason=serializer.validated_data["reason"],
            expected_version=serializer.validated_data.get("expected_version"),
        )
        return Response(BookingSerializer(booking, context={"role": actor.role}).data)

    @extend_schema(
        operation_id="pay_booking",
        summary="Pay for a booking awaiting payment",
        request=PaymentRequestSerializer,
        responses={
            200: BookingSerializer,
            202: OpenApiResponse(description="Processor has not confirmed the payment yet"),
            402: OpenApiResponse(description="Payment declined; booking cancelled"),
        },
        tags=["Bookings"],
    )
    @action(detail=True, methods=["post"], url_path="payment")
    def payment(self, request, pk=None):
        booking = self.get_object()
        serializer = PaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor = actor_for(request, booking)
        booking = PaymentService.complete_payment(
            booking.id,
            actor,
            serializer.validated_data["payment_method"],
        )
        return Response(BookingSerializer(booking, context={"role": actor.role}).data)

    @extend_schema(
        operation_id="get_booking_ledger",
        summary="Ledger legs of a booking",
        responses={200: LedgerEntrySerializer(many=True)},
        tags=["Bookings"],
    )
    @action(detail=True, methods=["get"])
    def ledger(self, request, pk=None):
        booking = self.get_object()
        entries = BookingService.get_ledger(booking.id)
        return Response(LedgerEntrySerializer(entries, many=True).data)

    @extend_schema(
        operation_id="get_booking_history",
        summary="State history of a booking",
        responses={200: BookingStateHistorySerializer(many=True)},
        tags=["Bookings"],
    )
    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        booking = self.get_object()
        rows = BookingService.get_history(booking.id)
        return Response(BookingStateHistorySerializer(rows, many=True).data)
