"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverStatus,
    PaymentStatus,
    PaymentType,
)


# ── Requests ──────────────────────────────────────────────────────────


class BookingCreateRequest(BaseModel):
    kind: BookingKind
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, max_length=255)
    destination_address: Optional[str] = Field(None, max_length=255)
    patient_name: Optional[str] = Field(None, max_length=120)
    contact_phone: Optional[str] = Field(None, max_length=30)
    dp_payment_deadline: Optional[datetime] = Field(
        None, description="Scheduled bookings only: auto-cancel if unpaid by then."
    )


class CancelRequest(BaseModel):
    # Validated by the lifecycle so a blank reason yields a typed rejection.
    reason: Optional[str] = None


class EmergencyAcceptRequest(BaseModel):
    booking_id: int


class StatusChangeRequest(BaseModel):
    status: DriverStatus


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    speed_kmh: Optional[float] = Field(None, ge=0, le=300)


class PaymentEventRequest(BaseModel):
    payment_type: PaymentType
    status: PaymentStatus
    amount: Optional[float] = Field(None, ge=0)
    reference: Optional[str] = Field(None, max_length=64)


# ── Responses ─────────────────────────────────────────────────────────


class BookingResponse(BaseModel):
    id: int
    kind: BookingKind
    status: BookingStatus
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    confirmed_at: Optional[datetime] = None
    pickup_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    estimated_arrival_at: Optional[datetime] = None
    is_downpayment_paid: bool = False
    is_fully_paid: bool = False
    cancellation_reason: Optional[str] = None
    dispatch_attempts: int = 0
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: int
    name: str
    status: DriverStatus
    is_active: bool
    vehicle_id: Optional[int] = None
    current_booking_id: Optional[int] = None
    last_lat: Optional[float] = None
    last_lng: Optional[float] = None
    last_active_at: Optional[datetime] = None
    total_trips: int = 0

    model_config = {"from_attributes": True}


class ActionResponse(BaseModel):
    success: bool
    error_kind: Optional[str] = None
    message: str
    warning: Optional[str] = None
    booking: Optional[BookingResponse] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    queued_dispatches: Optional[int] = None
