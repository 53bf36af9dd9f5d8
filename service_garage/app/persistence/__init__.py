"""
Persistence layer for the Garage service.
"""

from .memory import InMemoryGarageRepository
from .repository import GarageRepository

__all__ = ["GarageRepository", "InMemoryGarageRepository"]
