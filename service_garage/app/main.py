"""
Garage service: dashboard API backed by a read-through cache.

Reads go through ``CacheFacade.get_cached``; every write calls the
matching invalidation helper before it reports success.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, Header, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthenticationError, NotFoundError, ValidationError
from shared.logging import get_logger, set_team_context

from . import dashboard
from .cache import CacheFacade, CacheKeys, CacheTTL, KeyValueStore, create_store
from .models import (
    BookingPayload,
    BookingStatus,
    CustomerPayload,
    ServiceRecordPayload,
    ServiceRecordStatus,
    StaffPayload,
)
from .persistence import GarageRepository, InMemoryGarageRepository


async def team_id_header(x_team_id: Optional[int] = Header(None)) -> int:
    """Caller's team. Session handling lives upstream and forwards the team id."""
    if x_team_id is None:
        raise AuthenticationError()
    set_team_context(str(x_team_id))
    return x_team_id


def _missing(payload: Any, *fields: str) -> List[str]:
    return [name for name in fields if not getattr(payload, name)]


def _changes(payload: Any) -> Dict[str, Any]:
    """Fields the client sent with a value; nulls leave the stored value alone."""
    return {
        name: value
        for name, value in payload.model_dump(exclude_unset=True, exclude={"id"}).items()
        if value is not None
    }


class GarageService(BaseService):
    """Garage dashboard service implementation."""

    required_dependencies = ("database",)

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        repository: Optional[GarageRepository] = None,
        store: Optional[KeyValueStore] = None,
    ):
        super().__init__("garage", 8020, config)
        self.api_logger = get_logger("garage.api")

        self.store = store or create_store(self.config, metrics=self.metrics)
        self.cache = CacheFacade(self.store, metrics=self.metrics)
        self.repository = repository or InMemoryGarageRepository()

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_cache_routes()
        self._setup_customer_routes()
        self._setup_staff_routes()
        self._setup_booking_routes()
        self._setup_service_record_routes()
        self._setup_dashboard_routes()

        self.app.state.garage_service = self

    def _page(self, page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
        """Clamp paging parameters: page >= 1, 1 <= page_size <= max_page_size."""
        page = max(page or 1, 1)
        size = page_size if page_size is not None else self.config.default_page_size
        size = min(max(size, 1), self.config.max_page_size)
        return page, size

    def _setup_cache_routes(self):
        """Cache administration."""

        @self.app.get("/")
        async def root():
            return {
                "service": "garage",
                "message": "Garage - Dashboard Service",
                "version": "1.0.0",
                "cache": self.store.describe(),
            }

        @self.app.get("/cache/status")
        async def cache_status():
            return self.store.describe()

        @self.app.delete("/cache")
        async def flush_cache():
            flushed = await self.cache.clear_all()
            self.api_logger.warning("Cache flush requested", flushed=flushed)
            return {"flushed": flushed}

    def _setup_customer_routes(self):
        @self.app.get("/api/customers")
        async def list_customers(
            page: Optional[int] = Query(1),
            page_size: Optional[int] = Query(None, alias="pageSize"),
            team_id: int = Depends(team_id_header),
        ):
            page, size = self._page(page, page_size)

            async def fetch_page():
                rows = await self.repository.list_customers(team_id, (page - 1) * size, size)
                return [row.to_json() for row in rows]

            total, items = await asyncio.gather(
                self.cache.get_cached(
                    CacheKeys.customers_count(team_id),
                    lambda: self.repository.count_customers(team_id),
                    CacheTTL.MEDIUM,
                ),
                self.cache.get_cached(CacheKeys.customers(team_id, page, size), fetch_page, CacheTTL.MEDIUM),
            )
            return {"items": items, "total": int(total), "page": page, "pageSize": size}

        @self.app.get("/api/customers/{customer_id}")
        async def get_customer(customer_id: int, team_id: int = Depends(team_id_header)):
            async def fetch():
                row = await self.repository.get_customer(team_id, customer_id)
                return row.to_json() if row else None

            customer = await self.cache.get_cached(CacheKeys.customer_by_id(customer_id), fetch, CacheTTL.MEDIUM)
            # The key is not team-scoped; never hand another team's row out of the cache.
            if not customer or customer.get("teamId") != team_id:
                raise NotFoundError("Customer")
            return customer

        @self.app.post("/api/customers", status_code=201)
        async def create_customer(payload: CustomerPayload, team_id: int = Depends(team_id_header)):
            if _missing(payload, "name", "mobile_number", "registration_number"):
                raise ValidationError("Name, mobile number, and registration number are required")

            data = payload.model_dump(exclude_unset=True, exclude={"id"})
            data["registration_number"] = payload.registration_number.upper()
            customer = await self.repository.create_customer(team_id, data)

            await self.cache.invalidate_customer_cache(team_id)
            self.api_logger.info("Customer created", customer_id=customer.id)
            return customer.to_json()

        @self.app.put("/api/customers")
        async def update_customer(payload: CustomerPayload, team_id: int = Depends(team_id_header)):
            if not payload.id:
                raise ValidationError("Customer ID is required")

            changes = _changes(payload)
            if payload.registration_number:
                changes["registration_number"] = payload.registration_number.upper()

            customer = await self.repository.update_customer(team_id, payload.id, changes)
            if customer is None:
                raise NotFoundError("Customer")

            await self.cache.invalidate_customer_cache(team_id, customer.id)
            return customer.to_json()

        @self.app.delete("/api/customers")
        async def delete_customer(
            customer_id: Optional[int] = Query(None, alias="id"),
            team_id: int = Depends(team_id_header),
        ):
            if not customer_id:
                raise ValidationError("Customer ID is required")

            customer = await self.repository.delete_customer(team_id, customer_id)
            if customer is None:
                raise NotFoundError("Customer")

            await self.cache.invalidate_customer_cache(team_id, customer_id)
            return {"success": True}

    def _setup_staff_routes(self):
        @self.app.get("/api/staff")
        async def list_staff(
            page: Optional[int] = Query(1),
            page_size: Optional[int] = Query(None, alias="pageSize"),
            team_id: int = Depends(team_id_header),
        ):
            page, size = self._page(page, page_size)

            async def fetch_page():
                rows = await self.repository.list_staff(team_id, (page - 1) * size, size)
                return [row.to_json() for row in rows]

            total, items = await asyncio.gather(
                self.cache.get_cached(
                    CacheKeys.staff_count(team_id),
                    lambda: self.repository.count_staff(team_id),
                    CacheTTL.MEDIUM,
                ),
                self.cache.get_cached(CacheKeys.staff(team_id, page, size), fetch_page, CacheTTL.MEDIUM),
            )
            return {"items": items, "total": int(total), "page": page, "pageSize": size}

        @self.app.post("/api/staff", status_code=201)
        async def create_staff(payload: StaffPayload, team_id: int = Depends(team_id_header)):
            if _missing(payload, "full_name", "phone_number"):
                raise ValidationError("Full name and phone number are required")

            data = payload.model_dump(exclude_unset=True, exclude={"id"})
            if data.get("status") is None:
                data.pop("status", None)
            member = await self.repository.create_staff(team_id, data)

            await self.cache.invalidate_staff_cache(team_id)
            self.api_logger.info("Staff member created", staff_id=member.id)
            return member.to_json()

        @self.app.put("/api/staff")
        async def update_staff(payload: StaffPayload, team_id: int = Depends(team_id_header)):
            if not payload.id:
                raise ValidationError("Staff ID is required")

            changes = _changes(payload)
            member = await self.repository.update_staff(team_id, payload.id, changes)
            if member is None:
                raise NotFoundError("Staff member")

            await self.cache.invalidate_staff_cache(team_id)
            return member.to_json()

        @self.app.delete("/api/staff")
        async def delete_staff(
            staff_id: Optional[int] = Query(None, alias="id"),
            team_id: int = Depends(team_id_header),
        ):
            if not staff_id:
                raise ValidationError("Staff ID is required")

            member = await self.repository.delete_staff(team_id, staff_id)
            if member is None:
                raise NotFoundError("Staff member")

            await self.cache.invalidate_staff_cache(team_id)
            return {"success": True}

    def _setup_booking_routes(self):
        @self.app.post("/api/bookings", status_code=201)
        async def create_booking(payload: BookingPayload):
            """Public booking form; no team header."""
            required = ("first_name", "last_name", "phone", "email", "car_reg", "services", "book_date", "book_time")
            if _missing(payload, *required):
                raise ValidationError("Missing required fields", {"missing": _missing(payload, *required)})

            data = payload.model_dump(exclude_unset=True)
            data["status"] = BookingStatus.PENDING
            booking = await self.repository.create_booking(data)

            await self.cache.invalidate_booking_cache()
            self.api_logger.info("Booking created", booking_id=booking.id)
            return {
                "success": True,
                "message": "Booking created successfully",
                "booking": booking.to_json(),
            }

        @self.app.get("/api/bookings")
        async def list_bookings(
            page: Optional[int] = Query(1),
            page_size: Optional[int] = Query(None, alias="pageSize"),
            team_id: int = Depends(team_id_header),
        ):
            page, size = self._page(page, page_size)

            async def fetch_page():
                rows = await self.repository.list_bookings((page - 1) * size, size)
                return [row.to_json() for row in rows]

            total, items = await asyncio.gather(
                self.cache.get_cached(CacheKeys.bookings_count(), self.repository.count_bookings, CacheTTL.SHORT),
                self.cache.get_cached(CacheKeys.bookings(page, size), fetch_page, CacheTTL.SHORT),
            )
            return {"success": True, "bookings": items, "total": int(total), "page": page, "pageSize": size}

    def _setup_service_record_routes(self):
        @self.app.get("/api/service-records")
        async def list_service_records(
            customer_id: Optional[int] = Query(None, alias="customerId"),
            team_id: int = Depends(team_id_header),
        ):
            if customer_id is None:
                rows = await self.repository.list_service_records(team_id)
                return [row.to_json() for row in rows]

            async def fetch():
                rows = await self.repository.list_service_records(team_id, customer_id)
                return [row.to_json() for row in rows]

            return await self.cache.get_cached(CacheKeys.service_records(team_id, customer_id), fetch, CacheTTL.MEDIUM)

        @self.app.post("/api/service-records", status_code=201)
        async def create_service_record(payload: ServiceRecordPayload, team_id: int = Depends(team_id_header)):
            if _missing(payload, "vehicle_reg", "service_type"):
                raise ValidationError("Vehicle registration and service type are required")

            data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
            data["vehicle_reg"] = payload.vehicle_reg.upper()
            data.setdefault("status", ServiceRecordStatus.COMPLETED)
            record = await self.repository.create_service_record(team_id, data)

            await self.cache.invalidate_service_record_cache(team_id, record.customer_id)
            self.api_logger.info("Service record created", record_id=record.id)
            return record.to_json()

        @self.app.put("/api/service-records/{record_id}")
        async def update_service_record(
            record_id: int,
            payload: ServiceRecordPayload,
            team_id: int = Depends(team_id_header),
        ):
            existing = await self.repository.get_service_record(team_id, record_id)
            if existing is None:
                raise NotFoundError("Service record")

            changes = _changes(payload)
            if payload.vehicle_reg:
                changes["vehicle_reg"] = payload.vehicle_reg.upper()
            record = await self.repository.update_service_record(team_id, record_id, changes)
            if record is None:
                raise NotFoundError("Service record")

            await self.cache.invalidate_service_record_cache(team_id, existing.customer_id)
            if record.customer_id != existing.customer_id and record.customer_id is not None:
                await self.cache.invalidate_keys([CacheKeys.service_records(team_id, record.customer_id)], "service_records")
            return record.to_json()

        @self.app.delete("/api/service-records/{record_id}")
        async def delete_service_record(record_id: int, team_id: int = Depends(team_id_header)):
            record = await self.repository.delete_service_record(team_id, record_id)
            if record is None:
                raise NotFoundError("Service record")

            await self.cache.invalidate_service_record_cache(team_id, record.customer_id)
            return {"success": True}

    def _setup_dashboard_routes(self):
        @self.app.get("/api/dashboard")
        async def get_dashboard(team_id: int = Depends(team_id_header)):
            return await self.dashboard_summary(team_id)

    async def dashboard_summary(self, team_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Team statistics; each figure is cached independently."""
        now = now or datetime.now()
        repo = self.repository

        async def revenue(since: Optional[datetime] = None) -> float:
            return dashboard.total_revenue(await repo.completed_records_since(team_id, since))

        async def chart():
            records = await repo.completed_records_since(team_id, dashboard.chart_window_start(now))
            return dashboard.daily_revenue(records, now.date())

        async def breakup():
            records = await repo.completed_records_since(team_id, dashboard.breakup_window_start(now))
            return dashboard.yearly_breakup(records)

        total_revenue, total_customers, total_records, total_staff = await asyncio.gather(
            self.cache.get_cached(CacheKeys.dashboard_revenue(team_id), revenue, CacheTTL.MEDIUM),
            self.cache.get_cached(
                CacheKeys.customers_count(team_id), lambda: repo.count_customers(team_id), CacheTTL.MEDIUM
            ),
            self.cache.get_cached(
                CacheKeys.service_records_count(team_id), lambda: repo.count_service_records(team_id), CacheTTL.MEDIUM
            ),
            self.cache.get_cached(CacheKeys.staff_count(team_id), lambda: repo.count_staff(team_id), CacheTTL.MEDIUM),
        )

        daily = await self.cache.get_cached(CacheKeys.daily_revenue(team_id), chart, CacheTTL.MEDIUM)
        yearly = await self.cache.get_cached(CacheKeys.yearly_breakup(team_id), breakup, CacheTTL.MEDIUM)
        monthly = await self.cache.get_cached(
            CacheKeys.monthly_earnings(team_id),
            lambda: revenue(dashboard.month_start(now)),
            CacheTTL.MEDIUM,
        )

        return {
            "stats": {
                "totalRevenue": float(total_revenue),
                "totalCustomers": int(total_customers),
                "totalServiceRecords": int(total_records),
                "totalStaff": int(total_staff),
            },
            "chart": daily,
            "yearlyBreakup": yearly,
            "monthlyEarnings": float(monthly),
        }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check garage service dependencies. The cache is optional."""
        dependencies = {}

        if await self.store.health_check():
            dependencies["cache"] = "ok"
        else:
            dependencies["cache"] = self.store.status.value

        try:
            dependencies["database"] = "ok" if await self.repository.health_check() else "error"
        except Exception:
            dependencies["database"] = "error"

        return dependencies

    async def start(self):
        """Start garage service components."""
        await self.repository.start()
        await self.store.start()
        self.logger.info("Garage service started", cache=self.store.describe())

    async def stop(self):
        """Stop garage service components."""
        await self.store.stop()
        await self.repository.stop()
        self.logger.info("Garage service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create garage service application."""
    service = GarageService(config)
    return service.app


if __name__ == "__main__":
    service = GarageService()
    service.run()
