"""
Data models for the Garage service.

Entities are serialized with camelCase field names, matching the
dashboard's JSON contract.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceRecordStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class GarageModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Customer(GarageModel):
    id: int
    team_id: int
    name: str
    mobile_number: str
    email: Optional[str] = None
    address: Optional[str] = None
    registration_number: str
    make: Optional[str] = None
    model: Optional[str] = None
    colour: Optional[str] = None
    fuel_type: Optional[str] = None
    mot_expiry: Optional[str] = None
    tax_due_date: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class StaffMember(GarageModel):
    id: int
    team_id: int
    full_name: str
    phone_number: str
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    status: str = "active"
    shift_time: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Booking(GarageModel):
    id: int
    first_name: str
    last_name: str
    phone: str
    email: str
    car_reg: str
    services: List[str]
    book_date: str
    book_time: str
    message: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ServiceRecord(GarageModel):
    id: int
    team_id: int
    customer_id: Optional[int] = None
    vehicle_reg: str
    service_type: str
    mileage: Optional[int] = None
    labour_hours: Optional[int] = None
    parts_used: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    total_cost: float = 0.0
    status: ServiceRecordStatus = ServiceRecordStatus.COMPLETED
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# Request payloads. Required fields are checked by the handlers so the
# API answers 400 with a readable message, as the dashboard expects.

class CustomerPayload(GarageModel):
    id: Optional[int] = None
    name: Optional[str] = None
    mobile_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    registration_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    colour: Optional[str] = None
    fuel_type: Optional[str] = None
    mot_expiry: Optional[str] = None
    tax_due_date: Optional[str] = None


class StaffPayload(GarageModel):
    id: Optional[int] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None
    shift_time: Optional[str] = None


class BookingPayload(GarageModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    car_reg: Optional[str] = None
    services: Optional[List[str]] = None
    book_date: Optional[str] = None
    book_time: Optional[str] = None
    message: Optional[str] = None


class ServiceRecordPayload(GarageModel):
    customer_id: Optional[int] = None
    vehicle_reg: Optional[str] = None
    service_type: Optional[str] = None
    mileage: Optional[int] = None
    labour_hours: Optional[int] = None
    parts_used: Optional[List[str]] = None
    notes: Optional[str] = None
    total_cost: Optional[float] = None
    status: Optional[ServiceRecordStatus] = None
