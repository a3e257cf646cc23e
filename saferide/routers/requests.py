"""
Ride Requests Router

Ride request creation, management and candidate search.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from saferide.config import settings
from saferide.dependencies import (
    get_current_user_id,
    get_matchmaking_service,
    get_ride_service,
)
from saferide.exceptions import NotFoundError, UnauthorizedError
from saferide.models.ride_match import MatchCandidate, MatchingCriteria
from saferide.models.ride_request import RideRequest, RideRequestCreate, RideRequestUpdate
from saferide.services.matchmaking_service import MatchmakingService
from saferide.services.ride_service import RideService

router = APIRouter()


@router.post("", response_model=RideRequest, status_code=status.HTTP_201_CREATED)
async def create_ride_request(
    request: RideRequestCreate,
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    """Create a new searching ride request."""
    return await ride_service.create_ride_request(user_id, request)


@router.get("", response_model=List[RideRequest])
async def list_my_ride_requests(
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    """Active requests of the current user, earliest departure first."""
    return await ride_service.get_user_ride_requests(user_id)


@router.get("/{request_id}", response_model=RideRequest)
async def get_ride_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    ride_request = await ride_service.get_ride_request(request_id)
    if not ride_request:
        raise NotFoundError(f"Ride request {request_id} not found")
    if ride_request.user_id != user_id:
        raise UnauthorizedError("You do not own this ride request")
    return ride_request


@router.patch("/{request_id}", response_model=RideRequest)
async def update_ride_request(
    request_id: str,
    update: RideRequestUpdate,
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    """Edit a request. Only allowed while it is searching."""
    return await ride_service.update_ride_request(request_id, user_id, update)


@router.delete("/{request_id}")
async def delete_ride_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    """Delete a request. Only allowed while it is searching."""
    await ride_service.delete_ride_request(request_id, user_id)
    return {"message": "Ride request deleted"}


@router.post("/{request_id}/reset", response_model=RideRequest)
async def reset_stuck_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
):
    """Reset a request stuck in matched whose match no longer exists."""
    return await ride_service.reset_stuck_request(request_id, user_id)


@router.get("/{request_id}/matches", response_model=List[MatchCandidate])
async def find_potential_matches(
    request_id: str,
    max_origin_distance: Optional[float] = Query(None, gt=0),
    max_destination_distance: Optional[float] = Query(None, gt=0),
    min_match_score: Optional[int] = Query(None, ge=0, le=100),
    user_id: str = Depends(get_current_user_id),
    ride_service: RideService = Depends(get_ride_service),
    matchmaking: MatchmakingService = Depends(get_matchmaking_service),
):
    """Ranked candidates for one of the current user's requests."""
    ride_request = await ride_service.get_ride_request(request_id)
    if not ride_request:
        raise NotFoundError(f"Ride request {request_id} not found")
    if ride_request.user_id != user_id:
        raise UnauthorizedError("You do not own this ride request")

    criteria = MatchingCriteria(
        max_origin_distance=max_origin_distance or settings.max_origin_distance_m,
        max_destination_distance=(
            max_destination_distance or settings.max_destination_distance_m
        ),
        max_time_difference=settings.max_time_difference_minutes,
        min_match_score=(
            min_match_score if min_match_score is not None else settings.min_match_score
        ),
    )
    return await matchmaking.find_potential_matches(request_id, criteria)
