"""
In-memory repository for local runs and tests.
"""

from datetime import datetime
from itertools import count
from typing import Any, Dict, List, Optional, Type, TypeVar

from shared.logging import get_logger
from ..models import Booking, Customer, GarageModel, ServiceRecord, ServiceRecordStatus, StaffMember
from .repository import GarageRepository

M = TypeVar("M", bound=GarageModel)


class InMemoryGarageRepository(GarageRepository):
    """Dict-backed repository. Tracks query counts so callers can see cache effects."""

    def __init__(self):
        self.logger = get_logger("garage.persistence.memory")
        self._ids = count(1)
        self._customers: Dict[int, Customer] = {}
        self._staff: Dict[int, StaffMember] = {}
        self._bookings: Dict[int, Booking] = {}
        self._records: Dict[int, ServiceRecord] = {}
        self.query_count = 0

    def _query(self) -> None:
        self.query_count += 1

    def _create(self, table: Dict[int, M], model: Type[M], data: Dict[str, Any]) -> M:
        item = model(id=next(self._ids), **data)
        table[item.id] = item
        return item

    @staticmethod
    def _owned(table: Dict[int, M], team_id: int, item_id: int) -> Optional[M]:
        item = table.get(item_id)
        if item is None or getattr(item, "team_id", None) != team_id:
            return None
        return item

    def _update(self, table: Dict[int, M], team_id: int, item_id: int, changes: Dict[str, Any]) -> Optional[M]:
        item = self._owned(table, team_id, item_id)
        if item is None:
            return None
        updated = item.model_copy(update={**changes, "updated_at": datetime.now()})
        table[item_id] = updated
        return updated

    def _delete(self, table: Dict[int, M], team_id: int, item_id: int) -> Optional[M]:
        item = self._owned(table, team_id, item_id)
        if item is not None:
            del table[item_id]
        return item

    @staticmethod
    def _newest_first(items) -> list:
        return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)

    def _team_rows(self, table: Dict[int, M], team_id: int) -> List[M]:
        return [item for item in table.values() if item.team_id == team_id]

    # Customers
    async def count_customers(self, team_id: int) -> int:
        self._query()
        return len(self._team_rows(self._customers, team_id))

    async def list_customers(self, team_id: int, offset: int, limit: int) -> List[Customer]:
        self._query()
        return self._newest_first(self._team_rows(self._customers, team_id))[offset:offset + limit]

    async def get_customer(self, team_id: int, customer_id: int) -> Optional[Customer]:
        self._query()
        return self._owned(self._customers, team_id, customer_id)

    async def create_customer(self, team_id: int, data: Dict[str, Any]) -> Customer:
        self._query()
        return self._create(self._customers, Customer, {**data, "team_id": team_id})

    async def update_customer(self, team_id: int, customer_id: int, changes: Dict[str, Any]) -> Optional[Customer]:
        self._query()
        return self._update(self._customers, team_id, customer_id, changes)

    async def delete_customer(self, team_id: int, customer_id: int) -> Optional[Customer]:
        self._query()
        return self._delete(self._customers, team_id, customer_id)

    # Staff
    async def count_staff(self, team_id: int) -> int:
        self._query()
        return len(self._team_rows(self._staff, team_id))

    async def list_staff(self, team_id: int, offset: int, limit: int) -> List[StaffMember]:
        self._query()
        return self._newest_first(self._team_rows(self._staff, team_id))[offset:offset + limit]

    async def create_staff(self, team_id: int, data: Dict[str, Any]) -> StaffMember:
        self._query()
        return self._create(self._staff, StaffMember, {**data, "team_id": team_id})

    async def update_staff(self, team_id: int, staff_id: int, changes: Dict[str, Any]) -> Optional[StaffMember]:
        self._query()
        return self._update(self._staff, team_id, staff_id, changes)

    async def delete_staff(self, team_id: int, staff_id: int) -> Optional[StaffMember]:
        self._query()
        return self._delete(self._staff, team_id, staff_id)

    # Bookings
    async def count_bookings(self) -> int:
        self._query()
        return len(self._bookings)

    async def list_bookings(self, offset: int, limit: int) -> List[Booking]:
        self._query()
        return self._newest_first(self._bookings.values())[offset:offset + limit]

    async def create_booking(self, data: Dict[str, Any]) -> Booking:
        self._query()
        return self._create(self._bookings, Booking, data)

    # Service records
    async def list_service_records(self, team_id: int, customer_id: Optional[int] = None) -> List[ServiceRecord]:
        self._query()
        rows = self._team_rows(self._records, team_id)
        if customer_id is not None:
            rows = [row for row in rows if row.customer_id == customer_id]
        return self._newest_first(rows)

    async def get_service_record(self, team_id: int, record_id: int) -> Optional[ServiceRecord]:
        self._query()
        return self._owned(self._records, team_id, record_id)

    async def create_service_record(self, team_id: int, data: Dict[str, Any]) -> ServiceRecord:
        self._query()
        return self._create(self._records, ServiceRecord, {**data, "team_id": team_id})

    async def update_service_record(self, team_id: int, record_id: int, changes: Dict[str, Any]) -> Optional[ServiceRecord]:
        self._query()
        return self._update(self._records, team_id, record_id, changes)

    async def delete_service_record(self, team_id: int, record_id: int) -> Optional[ServiceRecord]:
        self._query()
        return self._delete(self._records, team_id, record_id)

    async def count_service_records(self, team_id: int) -> int:
        self._query()
        return len(self._team_rows(self._records, team_id))

    async def completed_records_since(self, team_id: int, since: Optional[datetime] = None) -> List[ServiceRecord]:
        self._query()
        return [
            row for row in self._team_rows(self._records, team_id)
            if row.status == ServiceRecordStatus.COMPLETED and (since is None or row.created_at >= since)
        ]
