"""
Shared test fixtures: in-memory document store, frozen clock, fake geocoder
and a notifier that records instead of sending.
"""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from saferide.database import USERS, DocumentStore, Filter
from saferide.models.ride_request import Location, RidePreferences, RideRequestCreate
from saferide.models.notification import NotificationType
from saferide.services.geocoding_service import Geocoder
from saferide.services.notification_service import Notifier
from saferide.services.ride_service import RideService
from saferide.utils.timezone_utils import Clock

_MISSING = object()

BASE_TIME = datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc)
DEPARTURE = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

# Dhaka: campus gate and a downtown drop-off
ORIGIN = (23.8103, 90.4125)
DESTINATION = (23.7461, 90.3742)

METERS_PER_DEGREE_LAT = 111_320


def offset_north(point, meters):
    """Shift a coordinate north by ``meters``."""
    return point[0] + meters / METERS_PER_DEGREE_LAT, point[1]


# =============================================================================
# In-memory DocumentStore
# =============================================================================


def _get_path(doc: Dict[str, Any], path: str):
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _matches(doc: Dict[str, Any], f: Filter) -> bool:
    value = _get_path(doc, f.field)
    if f.op == "==":
        return (None if value is _MISSING else value) == f.value
    if f.op == "!=":
        return (None if value is _MISSING else value) != f.value
    if f.op == "in":
        return value is not _MISSING and value in f.value
    if value is _MISSING or value is None:
        return False
    if f.op == "<":
        return value < f.value
    if f.op == "<=":
        return value <= f.value
    if f.op == ">":
        return value > f.value
    return value >= f.value


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store with the same compare-and-set semantics as the Mongo binding."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def seed(self, collection: str, document: Dict[str, Any]) -> None:
        self._collection(collection)[document["id"]] = copy.deepcopy(document)

    def raw(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self._collection(collection).get(doc_id)

    def all(self, collection: str) -> List[Dict[str, Any]]:
        return list(self._collection(collection).values())

    async def create(self, collection: str, document: Dict[str, Any]) -> str:
        doc = copy.deepcopy(document)
        doc.setdefault("id", str(uuid.uuid4()))
        if doc["id"] in self._collection(collection):
            raise ValueError(f"Duplicate id {doc['id']}")
        self._collection(collection)[doc["id"]] = doc
        return doc["id"]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _expectation_holds(self, doc, expected) -> bool:
        for path, value in (expected or {}).items():
            current = _get_path(doc, path)
            if (None if current is _MISSING else current) != value:
                return False
        return True

    async def update(self, collection, doc_id, fields, expected=None) -> bool:
        doc = self._collection(collection).get(doc_id)
        if doc is None or not self._expectation_holds(doc, expected):
            return False
        for path, value in fields.items():
            if path != "id":
                _set_path(doc, path, copy.deepcopy(value))
        return True

    async def delete(self, collection, doc_id, expected=None) -> bool:
        docs = self._collection(collection)
        doc = docs.get(doc_id)
        if doc is None or not self._expectation_holds(doc, expected):
            return False
        del docs[doc_id]
        return True

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        docs = [
            d for d in self._collection(collection).values()
            if all(_matches(d, f) for f in filters)
        ]
        if order_by:
            docs.sort(key=lambda d: _get_path(d, order_by), reverse=descending)
        if limit:
            docs = docs[:limit]
        return copy.deepcopy(docs)


# =============================================================================
# Collaborator fakes
# =============================================================================


class FrozenClock(Clock):
    def __init__(self, now: datetime = BASE_TIME):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeGeocoder(Geocoder):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        return f"Near {latitude:.3f},{longitude:.3f}"


class FailingGeocoder(Geocoder):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        raise TimeoutError("geocoder timed out")


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def notify(
        self,
        user_ids,
        title,
        body,
        data=None,
        notification_type=NotificationType.SYSTEM,
    ) -> None:
        self.sent.append({
            "user_ids": list(user_ids),
            "title": title,
            "body": body,
            "data": data or {},
            "type": notification_type,
        })

    def of_type(self, notification_type: NotificationType) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n["type"] == notification_type]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ride_service(store, clock):
    return RideService(store, clock)


def seed_user(store: InMemoryDocumentStore, user_id: str, **fields) -> Dict[str, Any]:
    doc = {
        "id": user_id,
        "first_name": fields.pop("first_name", user_id.capitalize()),
        "last_name": fields.pop("last_name", "Student"),
        "is_student_verified": fields.pop("is_student_verified", True),
        **fields,
    }
    store.seed(USERS, doc)
    return doc


def request_data(
    origin=ORIGIN,
    destination=DESTINATION,
    departure=DEPARTURE,
    flexibility=15,
    seats=1,
    **preferences,
) -> RideRequestCreate:
    return RideRequestCreate(
        origin=Location(latitude=origin[0], longitude=origin[1], address="Campus"),
        destination=Location(latitude=destination[0], longitude=destination[1], address="Downtown"),
        departure_time=departure,
        flexibility=flexibility,
        looking_for_seats=seats,
        max_price_per_seat=200,
        max_walk_distance=500,
        preferences=RidePreferences(**preferences),
    )
