"""
Unit tests for the cache key registry.
"""

import fnmatch

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_garage.app.cache.keys import CacheKeys, CacheTTL


class TestCacheKeys:
    """Test cases for CacheKeys."""

    def test_customers_key_is_deterministic(self):
        """Same parameters always give the same key."""
        assert CacheKeys.customers(5, 1, 10) == CacheKeys.customers(5, 1, 10)
        assert CacheKeys.customers(5, 1, 10) == "customers:5:1:10"

    def test_customers_key_varies_with_page_size(self):
        """Different pagination never collides."""
        assert CacheKeys.customers(5, 1, 10) != CacheKeys.customers(5, 1, 11)
        assert CacheKeys.customers(5, 1, 10) != CacheKeys.customers(5, 2, 10)
        assert CacheKeys.customers(5, 1, 10) != CacheKeys.customers(6, 1, 10)

    def test_string_and_int_ids_share_a_key(self):
        """Route parameters arriving as text map to the same key."""
        assert CacheKeys.customers("5", "1", "10") == CacheKeys.customers(5, 1, 10)
        assert CacheKeys.customer_by_id("7") == "customer:7"

    def test_fixed_key_formats(self):
        """Key formats used by the dashboard."""
        assert CacheKeys.user(1) == "user:1"
        assert CacheKeys.user_with_team(1) == "user_team:1"
        assert CacheKeys.team_members(3) == "team_members:3"
        assert CacheKeys.customers_count(3) == "customers_count:3"
        assert CacheKeys.staff(3, 2, 25) == "staff:3:2:25"
        assert CacheKeys.staff_count(3) == "staff_count:3"
        assert CacheKeys.bookings(1, 10) == "bookings:1:10"
        assert CacheKeys.bookings_count() == "bookings_count"
        assert CacheKeys.service_records(3, 9) == "service_records:3:9"
        assert CacheKeys.activity_logs(1) == "activity_logs:1"
        assert CacheKeys.dashboard_revenue(3) == "dashboard_revenue_3"
        assert CacheKeys.monthly_earnings(3) == "monthly_earnings_3"

    def test_entity_tags_do_not_collide(self):
        """Keys for different entities with the same parameters differ."""
        keys = {
            CacheKeys.customers(1, 1, 10),
            CacheKeys.staff(1, 1, 10),
            CacheKeys.customers_count(1),
            CacheKeys.staff_count(1),
            CacheKeys.customer_by_id(1),
            CacheKeys.user(1),
            CacheKeys.user_with_team(1),
            CacheKeys.team_members(1),
            CacheKeys.service_records(1, 1),
            CacheKeys.activity_logs(1),
            *CacheKeys.dashboard_keys(1),
        }
        assert len(keys) == 15

    def test_patterns_match_only_their_team(self):
        """Pagination patterns cover every page of one team and nothing else."""
        pattern = CacheKeys.customers_pattern(5)

        assert fnmatch.fnmatchcase(CacheKeys.customers(5, 1, 10), pattern)
        assert fnmatch.fnmatchcase(CacheKeys.customers(5, 3, 100), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.customers(55, 1, 10), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.customers_count(5), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.staff(5, 1, 10), pattern)

    def test_bookings_pattern_excludes_count(self):
        """The bookings count key is not a paginated variant."""
        pattern = CacheKeys.bookings_pattern()
        assert fnmatch.fnmatchcase(CacheKeys.bookings(2, 10), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.bookings_count(), pattern)

    def test_ttl_classes(self):
        """TTL classes in seconds."""
        assert CacheTTL.SHORT == 60
        assert CacheTTL.MEDIUM == 300
        assert CacheTTL.LONG == 3600
        assert CacheTTL.USER_SESSION == 1800

    def test_service_records_key_is_team_scoped(self):
        """Two teams asking for one customer's history never share an entry."""
        assert CacheKeys.service_records(1, 9) != CacheKeys.service_records(2, 9)

    def test_fractional_components_are_rejected(self):
        """Page 1.5 must not alias page 1."""
        with pytest.raises(ValueError):
            CacheKeys.customers(5, 1.5, 10)
        with pytest.raises(ValueError):
            CacheKeys.customer_by_id("1.5")

        assert CacheKeys.customers(5, 1.0, 10) == CacheKeys.customers(5, 1, 10)
