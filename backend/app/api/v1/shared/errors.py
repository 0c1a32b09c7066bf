"""Shared error handling utilities for API endpoints.

This module provides standardized error response functions for common
error scenarios like unknown stations or failed derivations.
"""

from fastapi import HTTPException, status

from app.services.network_errors import StationNotFoundError


def station_not_found(error: StationNotFoundError) -> HTTPException:
    """Create a standardized HTTP 404 exception for stations.

    Args:
        error: The lookup failure raised by the network services.

    Returns:
        An HTTPException with 404 status and detail message.
    """
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(error),
    )


def derivation_failed(action: str) -> HTTPException:
    """Create a standardized HTTP 500 exception for a failed derivation.

    Args:
        action: Short description of what was being derived (e.g., "frame").

    Returns:
        An HTTPException with 500 status and a generic detail message.
    """
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to derive network {action}",
    )


def invalid_request(error: ValueError) -> HTTPException:
    """Create a standardized HTTP 422 exception for rejected action values.

    Args:
        error: The validation failure raised by the network services.

    Returns:
        An HTTPException with 422 status and detail message.
    """
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=str(error),
    )
