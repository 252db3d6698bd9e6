"""
Serializer mixins shared by the booking and dispute APIs.

Available Mixins:
    AuditFieldsMixin: Include created_at, updated_at and version in output

Usage:
    from core.serializer_mixins import AuditFieldsMixin

    class BookingSerializer(AuditFieldsMixin, serializers.ModelSerializer):
        class Meta:
            model = Booking
            fields = ["id", "status"]  # created_at, updated_at, version added
"""

from __future__ import annotations

from typing import Any

AUDIT_FIELDS = ("created_at", "updated_at", "version")


class AuditFieldsMixin:
    """
    Append the audit fields the model has to the serializer's field list.

    ``version`` comes from core.model_mixins.VersionedMixin; API clients
    echo it back as ``expected_version`` on writes. Append-only rows
    (responses, ledger entries) only carry ``created_at``.
    """

    def get_field_names(self, declared_fields: Any, info: Any) -> list[str]:
        fields = list(super().get_field_names(declared_fields, info))  # type: ignore[misc]
        model_fields = {field.name for field in info.model._meta.get_fields()}
        fields.extend(name for name in AUDIT_FIELDS if name in model_fields and name not in fields)
        return fields
