"""
Garage dashboard service: customers, staff, bookings and service records
served through a read-through cache.
"""
