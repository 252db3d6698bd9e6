"""
OpenAPI schema customizations for drf-spectacular.

This module provides hooks to customize the generated OpenAPI schema,
including tag groupings for better documentation organization in ReDoc.

Tag naming follows the pattern: [App Name] or [App Name] - [Group Name]
Examples:
- Bookings (create, read, transition)
- Bookings - Ledger (ledger and history views)
- Disputes (open, respond, resolve)
- Disputes - Staff (assignment, workflow, stats)
"""

# Booking operations shown under the ledger group
BOOKING_LEDGER_OPERATIONS = {"get_booking_ledger", "get_booking_history"}

# Dispute operations only staff can call
DISPUTE_STAFF_OPERATIONS = {
    "assign_dispute",
    "advance_dispute",
    "resolve_dispute",
    "dispute_stats",
}


def group_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group API endpoints by function.

    Groups:
        - Bookings: booking aggregate and lifecycle transitions
        - Bookings - Ledger: per-booking ledger and transition history
        - Disputes: party-facing dispute operations
        - Disputes - Staff: staff-only workflow operations
        - Health: infrastructure probes
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in BOOKING_LEDGER_OPERATIONS:
                operation["tags"] = ["Bookings - Ledger"]

            elif operation_id in DISPUTE_STAFF_OPERATIONS:
                operation["tags"] = ["Disputes - Staff"]

            elif path.startswith("/health"):
                operation["tags"] = ["Health"]

    result["tags"] = [
        {
            "name": "Bookings",
            "description": "Booking creation, retrieval and lifecycle transitions.",
        },
        {
            "name": "Bookings - Ledger",
            "description": "Read-only ledger entries and transition history of a booking.",
        },
        {
            "name": "Disputes",
            "description": "Opening, answering and withdrawing disputes on a booking.",
        },
        {
            "name": "Disputes - Staff",
            "description": "Dispute assignment, workflow steps, resolution and statistics.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probe.",
        },
    ]

    return result
