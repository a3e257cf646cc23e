"""
Tests for Ride Service

Request creation, owner-only edits while searching, orphan reset and
expired request cleanup.
"""

from datetime import timedelta

import pytest

from saferide.database import RIDE_MATCHES, RIDE_REQUESTS
from saferide.exceptions import InvalidStateError, NotFoundError, UnauthorizedError
from saferide.models.ride_request import Location, RideRequestUpdate
from saferide.utils.geo_utils import encode_geohash

from conftest import DEPARTURE, ORIGIN, request_data


class TestCreateRideRequest:

    @pytest.mark.asyncio
    async def test_create(self, store, clock, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data(flexibility=20))

        assert ride_request.user_id == "alice"
        assert ride_request.status == "searching"
        assert ride_request.origin.geohash == encode_geohash(*ORIGIN)
        assert len(ride_request.destination.geohash) == 10
        assert ride_request.expires_at == DEPARTURE + timedelta(minutes=20)
        assert ride_request.created_at == clock.now()

        stored = store.raw(RIDE_REQUESTS, ride_request.id)
        assert stored["status"] == "searching"
        assert stored["origin"]["geohash"] == ride_request.origin.geohash

    @pytest.mark.asyncio
    async def test_client_geohash_is_ignored(self, ride_service):
        data = request_data()
        data.origin.geohash = "bogus"

        ride_request = await ride_service.create_ride_request("alice", data)

        assert ride_request.origin.geohash == encode_geohash(*ORIGIN)

    @pytest.mark.asyncio
    async def test_naive_departure_is_utc(self, ride_service):
        data = request_data(departure=DEPARTURE.replace(tzinfo=None))

        ride_request = await ride_service.create_ride_request("alice", data)

        assert ride_request.departure_time == DEPARTURE

    @pytest.mark.asyncio
    async def test_missing_address_uses_coordinates(self, ride_service):
        data = request_data()
        data.origin.address = ""

        ride_request = await ride_service.create_ride_request("alice", data)

        assert ride_request.origin.address == "23.810300, 90.412500"


class TestListRideRequests:

    @pytest.mark.asyncio
    async def test_active_only_earliest_first(self, store, ride_service):
        late = await ride_service.create_ride_request(
            "alice", request_data(departure=DEPARTURE + timedelta(hours=1))
        )
        early = await ride_service.create_ride_request("alice", request_data())
        done = await ride_service.create_ride_request("alice", request_data())
        await store.update(RIDE_REQUESTS, done.id, {"status": "completed"})
        await ride_service.create_ride_request("bob", request_data())

        requests = await ride_service.get_user_ride_requests("alice")

        assert [r.id for r in requests] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_get_missing(self, ride_service):
        assert await ride_service.get_ride_request("missing") is None


class TestUpdateAndDelete:

    @pytest.mark.asyncio
    async def test_update_recomputes_derived_fields(self, store, clock, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        clock.advance(minutes=5)
        new_origin = Location(latitude=23.80, longitude=90.41, address="Library")

        updated = await ride_service.update_ride_request(
            ride_request.id, "alice", RideRequestUpdate(origin=new_origin, flexibility=30)
        )

        assert updated.origin.geohash == encode_geohash(23.80, 90.41)
        assert updated.expires_at == DEPARTURE + timedelta(minutes=30)
        assert updated.updated_at == clock.now()
        assert store.raw(RIDE_REQUESTS, ride_request.id)["flexibility"] == 30

    @pytest.mark.asyncio
    async def test_update_only_while_searching(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        await store.update(RIDE_REQUESTS, ride_request.id, {"status": "matched"})

        with pytest.raises(InvalidStateError):
            await ride_service.update_ride_request(
                ride_request.id, "alice", RideRequestUpdate(flexibility=30)
            )

    @pytest.mark.asyncio
    async def test_update_requires_owner(self, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())

        with pytest.raises(UnauthorizedError):
            await ride_service.update_ride_request(
                ride_request.id, "bob", RideRequestUpdate(flexibility=30)
            )

    @pytest.mark.asyncio
    async def test_delete(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())

        await ride_service.delete_ride_request(ride_request.id, "alice")

        assert store.raw(RIDE_REQUESTS, ride_request.id) is None

    @pytest.mark.asyncio
    async def test_delete_matched_is_rejected(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        await store.update(RIDE_REQUESTS, ride_request.id, {"status": "matched"})

        with pytest.raises(InvalidStateError):
            await ride_service.delete_ride_request(ride_request.id, "alice")

    @pytest.mark.asyncio
    async def test_delete_missing(self, ride_service):
        with pytest.raises(NotFoundError):
            await ride_service.delete_ride_request("missing", "alice")


class TestResetStuckRequest:

    @pytest.mark.asyncio
    async def test_orphan_is_reset(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        await store.update(
            RIDE_REQUESTS, ride_request.id,
            {"status": "matched", "match_id": "gone", "matched_with": ["other"]},
        )

        reset = await ride_service.reset_stuck_request(ride_request.id, "alice")

        assert reset.status == "searching"
        assert reset.match_id is None
        assert reset.matched_with == []

    @pytest.mark.asyncio
    async def test_active_match_is_not_reset(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        store.seed(RIDE_MATCHES, {"id": "m1", "status": "pending"})
        await store.update(RIDE_REQUESTS, ride_request.id, {"status": "matched", "match_id": "m1"})

        with pytest.raises(InvalidStateError):
            await ride_service.reset_stuck_request(ride_request.id, "alice")

    @pytest.mark.asyncio
    async def test_searching_is_not_reset(self, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())

        with pytest.raises(InvalidStateError):
            await ride_service.reset_stuck_request(ride_request.id, "alice")

    @pytest.mark.asyncio
    async def test_reset_with_stale_match_id_is_skipped(self, store, ride_service):
        ride_request = await ride_service.create_ride_request("alice", request_data())
        await store.update(RIDE_REQUESTS, ride_request.id, {"status": "matched", "match_id": "m2"})

        assert await ride_service.reset_to_searching(ride_request.id, expected_match_id="m1") is False
        assert store.raw(RIDE_REQUESTS, ride_request.id)["match_id"] == "m2"


class TestCleanupExpiredRequests:

    @pytest.mark.asyncio
    async def test_cancels_only_expired_searching(self, store, clock, ride_service):
        expired = await ride_service.create_ride_request("alice", request_data())
        later = await ride_service.create_ride_request(
            "bob", request_data(departure=DEPARTURE + timedelta(hours=3))
        )
        matched = await ride_service.create_ride_request("carol", request_data())
        await store.update(RIDE_REQUESTS, matched.id, {"status": "matched"})

        clock.advance(hours=2, minutes=20)

        assert await ride_service.cleanup_expired_requests() == 1
        assert store.raw(RIDE_REQUESTS, expired.id)["status"] == "cancelled"
        assert store.raw(RIDE_REQUESTS, later.id)["status"] == "searching"
        assert store.raw(RIDE_REQUESTS, matched.id)["status"] == "matched"
        assert await ride_service.cleanup_expired_requests() == 0
