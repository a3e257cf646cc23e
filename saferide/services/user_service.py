"""User Service - Read-only profile lookups for matching and participant snapshots."""

import asyncio
import logging
from typing import Dict, Iterable

from saferide.database import USERS, DocumentStore, Filter
from saferide.models.user import UserProfile

logger = logging.getLogger(__name__)

# Store "in" queries are split into batches of this size
BATCH_SIZE = 30


class UserService:
    """
    Profile lookups. Profiles are owned by the account subsystem; this
    service never writes them.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """Batch lookup. Missing profiles are absent from the result."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        batches = [ids[i:i + BATCH_SIZE] for i in range(0, len(ids), BATCH_SIZE)]
        results = await asyncio.gather(*[
            self.store.query(USERS, [Filter("id", "in", batch)]) for batch in batches
        ])

        users: Dict[str, UserProfile] = {}
        for docs in results:
            for doc in docs:
                users[doc["id"]] = UserProfile(**doc)

        missing = len(ids) - len(users)
        if missing:
            logger.debug(f"{missing} of {len(ids)} user profiles not found")
        return users
