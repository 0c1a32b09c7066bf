"""
Shared dependency injection functions for API endpoints.
"""

from fastapi import HTTPException, Request, status

from app.services.network_service import NetworkState


async def get_network_state(request: Request) -> NetworkState:
    """Return the process-wide network state created during startup."""
    state: NetworkState | None = getattr(request.app.state, "network", None)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Trip network is still loading",
        )
    return state
