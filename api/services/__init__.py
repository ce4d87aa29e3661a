# API Services
from api.services.fleet_service import FleetService, fleet_service

__all__ = [
    "FleetService",
    "fleet_service",
]
