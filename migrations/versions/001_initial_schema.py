"""Initial schema: vehicles, drivers, bookings and payments.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

BOOKING_KIND = ("emergency", "scheduled")
BOOKING_STATUS = (
    "pending",
    "confirmed",
    "dispatched",
    "arrived",
    "enroute",
    "completed",
    "cancelled",
    "payment_failed",
)
DRIVER_STATUS = ("available", "busy", "off")
VEHICLE_STATUS = ("available", "on_duty", "maintenance", "unavailable")
PAYMENT_TYPE = ("downpayment", "full_payment", "final_payment")
PAYMENT_STATUS = ("pending", "paid", "failed")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("plate_number", sa.String(20), unique=True, nullable=False),
        sa.Column("vehicle_type", sa.String(30), nullable=False, server_default="basic"),
        sa.Column(
            "status",
            sa.Enum(*VEHICLE_STATUS, name="vehicle_status"),
            nullable=False,
            server_default="available",
        ),
        sa.Column("assigned_driver_id", sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_vehicles_status", "vehicles", ["status"])

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*DRIVER_STATUS, name="driver_status"),
            nullable=False,
            server_default="off",
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=True
        ),
        sa.Column("current_booking_id", sa.Integer, nullable=True),
        sa.Column("last_lat", sa.Float, nullable=True),
        sa.Column("last_lng", sa.Float, nullable=True),
        sa.Column("last_location_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_trips", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("idx_drivers_status", "drivers", ["status", "is_active"])
    op.create_index("idx_drivers_vehicle", "drivers", ["vehicle_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "kind", sa.Enum(*BOOKING_KIND, name="booking_kind"), nullable=False
        ),
        sa.Column(
            "status",
            sa.Enum(*BOOKING_STATUS, name="booking_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=True
        ),
        sa.Column("patient_name", sa.String(120), nullable=True),
        sa.Column("contact_phone", sa.String(30), nullable=True),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("destination_address", sa.String(255), nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_arrival_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_downpayment_paid", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("is_fully_paid", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("dp_payment_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("cancelled_by", sa.String(40), nullable=True),
        sa.Column("dispatch_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("dispatch_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatch_escalated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_bookings_status", "bookings", ["status", "kind"])
    op.create_index("idx_bookings_driver", "bookings", ["driver_id"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.Integer,
            sa.ForeignKey("bookings.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "payment_type",
            sa.Enum(*PAYMENT_TYPE, name="payment_type"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(*PAYMENT_STATUS, name="payment_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("amount", sa.Float, nullable=True),
        sa.Column("reference", sa.String(64), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("drivers")
    op.drop_table("vehicles")
    for enum_name in (
        "payment_status",
        "payment_type",
        "booking_status",
        "booking_kind",
        "driver_status",
        "vehicle_status",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
