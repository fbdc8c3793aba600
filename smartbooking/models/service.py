"""
Reference data shapes and the lookup interfaces used to resolve them.

Customers and services live outside this package; the booking flow only needs
to read them by id.
"""

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field


class Service(BaseModel):
    """Bookable service as far as slot calculation is concerned."""
    id: str
    name: str = ""
    duration_minutes: int = Field(..., gt=0, description="Default appointment length")
    price: float = Field(0.0, ge=0)


class ServiceLookup(Protocol):
    async def lookup_by_id(self, service_id: str) -> Optional[Service]:
        ...


class CustomerLookup(Protocol):
    async def lookup_by_id(self, customer_id: str) -> Optional[Dict[str, Any]]:
        ...


class InMemoryServiceLookup:
    """Dictionary-backed ServiceLookup, used for local setups and tests."""

    def __init__(self, services=None):
        self._services: Dict[str, Service] = {s.id: s for s in (services or [])}

    def add(self, service: Service) -> None:
        self._services[service.id] = service

    async def lookup_by_id(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)
