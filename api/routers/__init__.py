# API Routers
from api.routers import agents, server

__all__ = ["agents", "server"]
