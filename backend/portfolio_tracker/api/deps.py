from fastapi import Request

from portfolio_tracker.core.container import Container


def get_container(request: Request) -> Container:
    """The container built at application startup."""
    return request.app.state.container
