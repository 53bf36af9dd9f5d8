"""
Persistence interface for the Garage service.

The relational database lives outside this service; handlers only see
this async protocol. Every team-scoped call ignores rows belonging to
other teams.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import Booking, Customer, ServiceRecord, StaffMember


class GarageRepository(ABC):
    """Async data access for customers, staff, bookings and service records."""

    async def start(self) -> None:
        """Open connections."""

    async def stop(self) -> None:
        """Close connections."""

    async def health_check(self) -> bool:
        return True

    # Customers
    @abstractmethod
    async def count_customers(self, team_id: int) -> int: ...

    @abstractmethod
    async def list_customers(self, team_id: int, offset: int, limit: int) -> List[Customer]:
        """Newest first."""

    @abstractmethod
    async def get_customer(self, team_id: int, customer_id: int) -> Optional[Customer]: ...

    @abstractmethod
    async def create_customer(self, team_id: int, data: Dict[str, Any]) -> Customer: ...

    @abstractmethod
    async def update_customer(self, team_id: int, customer_id: int, changes: Dict[str, Any]) -> Optional[Customer]: ...

    @abstractmethod
    async def delete_customer(self, team_id: int, customer_id: int) -> Optional[Customer]: ...

    # Staff
    @abstractmethod
    async def count_staff(self, team_id: int) -> int: ...

    @abstractmethod
    async def list_staff(self, team_id: int, offset: int, limit: int) -> List[StaffMember]: ...

    @abstractmethod
    async def create_staff(self, team_id: int, data: Dict[str, Any]) -> StaffMember: ...

    @abstractmethod
    async def update_staff(self, team_id: int, staff_id: int, changes: Dict[str, Any]) -> Optional[StaffMember]: ...

    @abstractmethod
    async def delete_staff(self, team_id: int, staff_id: int) -> Optional[StaffMember]: ...

    # Bookings (not team-scoped: they arrive from the public site)
    @abstractmethod
    async def count_bookings(self) -> int: ...

    @abstractmethod
    async def list_bookings(self, offset: int, limit: int) -> List[Booking]: ...

    @abstractmethod
    async def create_booking(self, data: Dict[str, Any]) -> Booking: ...

    # Service records
    @abstractmethod
    async def list_service_records(self, team_id: int, customer_id: Optional[int] = None) -> List[ServiceRecord]: ...

    @abstractmethod
    async def get_service_record(self, team_id: int, record_id: int) -> Optional[ServiceRecord]: ...

    @abstractmethod
    async def create_service_record(self, team_id: int, data: Dict[str, Any]) -> ServiceRecord: ...

    @abstractmethod
    async def update_service_record(self, team_id: int, record_id: int, changes: Dict[str, Any]) -> Optional[ServiceRecord]: ...

    @abstractmethod
    async def delete_service_record(self, team_id: int, record_id: int) -> Optional[ServiceRecord]: ...

    @abstractmethod
    async def count_service_records(self, team_id: int) -> int: ...

    @abstractmethod
    async def completed_records_since(self, team_id: int, since: Optional[datetime] = None) -> List[ServiceRecord]:
        """Completed records, optionally created at or after ``since``."""
