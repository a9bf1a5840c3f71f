"""Request-scoped access to the process-wide components."""

from fastapi import Request

from interaction_analytics.services import Services


def get_services(request: Request) -> Services:
    """Return the components built in the app lifespan."""
    return request.app.state.services
