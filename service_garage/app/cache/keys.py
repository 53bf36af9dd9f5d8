"""
Cache key registry and TTL classes.

Keys are built from an entity tag plus integer parameters only, so the
same query always maps to the same key and different queries never
collide. Keys for rows read through a team carry the team id.
"""

from enum import IntEnum
from typing import Union

Id = Union[int, str]


def _part(value: Id) -> int:
    """Integer key component. Fractional numbers are rejected rather than truncated."""
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"Cache key component must be integral, got {value!r}")
    return int(value)


class CacheTTL(IntEnum):
    """Entry lifetimes in seconds, by data volatility."""
    SHORT = 60          # frequently changing data
    MEDIUM = 300        # semi-static data
    LONG = 3600         # rarely changing data
    USER_SESSION = 1800


class CacheKeys:
    """Canonical cache key builders."""

    @staticmethod
    def user(user_id: Id) -> str:
        return f"user:{_part(user_id)}"

    @staticmethod
    def user_with_team(user_id: Id) -> str:
        return f"user_team:{_part(user_id)}"

    @staticmethod
    def team_members(team_id: Id) -> str:
        return f"team_members:{_part(team_id)}"

    @staticmethod
    def customer_by_id(customer_id: Id) -> str:
        return f"customer:{_part(customer_id)}"

    @staticmethod
    def customers(team_id: Id, page: int, page_size: int) -> str:
        return f"customers:{_part(team_id)}:{_part(page)}:{_part(page_size)}"

    @staticmethod
    def customers_count(team_id: Id) -> str:
        return f"customers_count:{_part(team_id)}"

    @staticmethod
    def customers_pattern(team_id: Id) -> str:
        """Every paginated customer listing for a team."""
        return f"customers:{_part(team_id)}:*:*"

    @staticmethod
    def staff(team_id: Id, page: int, page_size: int) -> str:
        return f"staff:{_part(team_id)}:{_part(page)}:{_part(page_size)}"

    @staticmethod
    def staff_count(team_id: Id) -> str:
        return f"staff_count:{_part(team_id)}"

    @staticmethod
    def staff_pattern(team_id: Id) -> str:
        return f"staff:{_part(team_id)}:*:*"

    @staticmethod
    def bookings(page: int, page_size: int) -> str:
        return f"bookings:{_part(page)}:{_part(page_size)}"

    @staticmethod
    def bookings_count() -> str:
        return "bookings_count"

    @staticmethod
    def bookings_pattern() -> str:
        return "bookings:*:*"

    @staticmethod
    def service_records(team_id: Id, customer_id: Id) -> str:
        """A customer's service history as seen by one team."""
        return f"service_records:{_part(team_id)}:{_part(customer_id)}"

    @staticmethod
    def activity_logs(user_id: Id) -> str:
        return f"activity_logs:{_part(user_id)}"

    # Dashboard aggregates
    @staticmethod
    def dashboard_revenue(team_id: Id) -> str:
        return f"dashboard_revenue_{_part(team_id)}"

    @staticmethod
    def service_records_count(team_id: Id) -> str:
        return f"service_records_count_{_part(team_id)}"

    @staticmethod
    def daily_revenue(team_id: Id) -> str:
        return f"daily_revenue_{_part(team_id)}"

    @staticmethod
    def yearly_breakup(team_id: Id) -> str:
        return f"yearly_breakup_{_part(team_id)}"

    @staticmethod
    def monthly_earnings(team_id: Id) -> str:
        return f"monthly_earnings_{_part(team_id)}"

    @classmethod
    def dashboard_keys(cls, team_id: Id) -> list:
        """All dashboard aggregate keys that depend on service records."""
        return [
            cls.dashboard_revenue(team_id),
            cls.service_records_count(team_id),
            cls.daily_revenue(team_id),
            cls.yearly_breakup(team_id),
            cls.monthly_earnings(team_id),
        ]
