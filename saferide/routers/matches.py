"""
Matches Router

Match formation, confirmation, departure and ride progress.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from saferide.dependencies import (
    get_chat_service,
    get_current_user_id,
    get_lifecycle_service,
    get_match_service,
)
from saferide.exceptions import NotFoundError, UnauthorizedError
from saferide.models.chat_message import ChatMessage
from saferide.models.ride_match import MatchCreate, RideMatch
from saferide.services.chat_service import ChatService
from saferide.services.lifecycle_service import MatchLifecycleService
from saferide.services.match_service import MatchService

router = APIRouter()


async def _get_participant_match(
    match_id: str, user_id: str, match_service: MatchService
) -> RideMatch:
    match = await match_service.get_ride_match(match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found")
    if not match.is_participant(user_id):
        raise UnauthorizedError("You are not a participant of this match")
    return match


@router.post("", response_model=RideMatch, status_code=status.HTTP_201_CREATED)
async def create_match(
    data: MatchCreate,
    user_id: str = Depends(get_current_user_id),
    match_service: MatchService = Depends(get_match_service),
):
    """
    Form a match from selected requests.

    The caller must own one of the requests. Fails with 409 when any request
    already belongs to an active match.
    """
    return await match_service.create_match(data.request_ids, creator_user_id=user_id)


@router.get("/{match_id}", response_model=RideMatch)
async def get_match(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    match_service: MatchService = Depends(get_match_service),
):
    return await _get_participant_match(match_id, user_id, match_service)


@router.post("/{match_id}/confirm", response_model=RideMatch)
async def confirm_match(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: MatchLifecycleService = Depends(get_lifecycle_service),
):
    """Confirm participation. Confirming twice is a no-op."""
    return await lifecycle.confirm_match(match_id, user_id)


@router.post("/{match_id}/leave", response_model=RideMatch)
async def leave_match(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: MatchLifecycleService = Depends(get_lifecycle_service),
):
    """Leave a match; the request goes back to searching."""
    return await lifecycle.leave_match(match_id, user_id)


@router.post("/{match_id}/start", response_model=RideMatch)
async def start_ride(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: MatchLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.start_ride(match_id, user_id)


@router.post("/{match_id}/complete", response_model=RideMatch)
async def complete_ride(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: MatchLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.complete_ride(match_id, user_id)


@router.get("/{match_id}/messages", response_model=List[ChatMessage])
async def get_match_messages(
    match_id: str,
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    match_service: MatchService = Depends(get_match_service),
    chat_service: ChatService = Depends(get_chat_service),
):
    await _get_participant_match(match_id, user_id, match_service)
    return await chat_service.get_messages(match_id, limit=limit)
