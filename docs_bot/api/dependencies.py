"""Request dependencies."""

from fastapi import Request

from docs_bot.services.container import Services


def get_services(request: Request) -> Services:
    """Service container built during application startup."""
    return request.app.state.services
