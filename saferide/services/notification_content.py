"""
SafeRide Notification Content

Short, friendly notification messages. No emojis.
Multiple variants for titles; bodies carry the facts.
"""

import random
from typing import List


def pick(messages: List[str]) -> str:
    """Pick a random message from a list."""
    return random.choice(messages)


def format_cost(amount: float) -> str:
    return f"BDT {amount:.2f}"


# =============================================================================
# MATCH FOUND - When a match is formed
# =============================================================================
MATCH_FOUND_TITLES = [
    "Ride Match Found",
    "We Found Your People",
    "Your Ride Crew Awaits",
]

MATCH_FOUND_BODY = (
    "Meet at {meeting_point}. Estimated cost {cost} per person. "
    "Confirm to lock it in."
)


# =============================================================================
# MATCH CONFIRMED - When all participants confirm
# =============================================================================
MATCH_CONFIRMED_TITLES = [
    "Ride Confirmed",
    "All Set",
    "It's Official",
]

MATCH_CONFIRMED_BODY = "Everyone confirmed. Final cost: {cost} per person."


# =============================================================================
# CONFIRMATION REMINDER
# =============================================================================
CONFIRMATION_REMINDER_TITLES = [
    "Confirm Your Ride",
    "Your Group Is Waiting",
]

CONFIRMATION_REMINDER_BODY = (
    "Please confirm your ride match. It will be cancelled in {minutes} minutes "
    "if not everyone confirms."
)


# =============================================================================
# CANCELLATIONS
# =============================================================================
MATCH_EXPIRED_TITLE = "Match Expired"
MATCH_EXPIRED_BODY = (
    "Your ride match has expired because the departure time has passed. "
    "Your request is open for matching again."
)

CONFIRMATION_TIMEOUT_TITLE = "Confirmation Timeout"
CONFIRMATION_TIMEOUT_BODY = (
    "Your ride match was cancelled because not all participants confirmed in "
    "time ({confirmed}/{total} confirmed)."
)

MATCH_CANCELLED_TITLE = "Match Cancelled"
NOT_ENOUGH_PARTICIPANTS_BODY = (
    "{name} left and there are not enough participants for this ride. "
    "Your request is searching again."
)


# =============================================================================
# MEMBERSHIP CHANGES
# =============================================================================
PARTICIPANT_LEFT_TITLE = "Participant Left"
PARTICIPANT_LEFT_BODY = "{name} left the ride. New cost: {cost} per person."


# =============================================================================
# RIDE PROGRESS
# =============================================================================
RIDE_STARTED_TITLE = "Ride Started"
RIDE_STARTED_BODY = "Your shared ride is under way. Have a safe trip."

RIDE_COMPLETED_TITLE = "Ride Completed"
RIDE_COMPLETED_BODY = "You have arrived. Thanks for sharing the ride."


# =============================================================================
# CHAT SYSTEM MESSAGES
# =============================================================================
CHAT_MATCH_FORMED = (
    "Ride match created! Meeting point: {meeting_point}. "
    "Estimated cost: {cost} per person. Please confirm to proceed."
)
CHAT_MATCH_CONFIRMED = "Ride confirmed! All participants are ready. Final cost: {cost} per person."
CHAT_PARTICIPANT_LEFT = "{name} left the ride. New cost per person: {cost}."
CHAT_PARTICIPANT_CONFIRMED = "{name} confirmed the ride."
CHAT_RIDE_STARTED = "Ride started."
CHAT_RIDE_COMPLETED = "Ride completed."
