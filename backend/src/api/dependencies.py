"""
Shared FastAPI dependencies for the booking API.
"""

from fastapi import Request

from services.registry import ServiceRegistry


def get_services(request: Request) -> ServiceRegistry:
    """
    Provide the service registry built at application startup.

    Tests replace it through ``app.dependency_overrides``.
    """
    return request.app.state.services
