"""
Node status API.

FastAPI service providing health, service status and metrics endpoints
for a running node.
"""
from typing import List, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from rollups_node import __version__
from rollups_node.node import Node


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str


class ServiceStatus(BaseModel):
    """Status of one supervised service."""
    name: str
    binary_name: str
    healthcheck_port: str
    state: str
    ready: bool
    returncode: Optional[int] = None


class ServicesResponse(BaseModel):
    """List of services response."""
    services: List[ServiceStatus]
    count: int


def create_app(node: Node) -> FastAPI:
    """
    Build the status API for a node.

    Args:
        node: Node whose supervisors are reported

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Rollups Node",
        description="Status of the supervised rollups services",
        version=__version__
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint. Degraded while any service is down."""
        return HealthResponse(
            status="healthy" if node.is_healthy() else "degraded",
            service="rollups-node",
            version=__version__
        )

    @app.get("/v1/services", response_model=ServicesResponse)
    async def list_services():
        """Status of every service, in registry order."""
        services = [ServiceStatus(**status) for status in node.snapshot()]
        return ServicesResponse(services=services, count=len(services))

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics():
        """Prometheus metrics endpoint."""
        return node.render_metrics()

    return app
