"""Chat Service - System announcements in match chat rooms."""

import logging
import uuid
from typing import List, Optional

from saferide.database import CHAT_MESSAGES, DocumentStore, Filter
from saferide.models.chat_message import ChatMessage, MessageType
from saferide.utils.timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def add_system_message(self, match_id: str, content: str) -> Optional[ChatMessage]:
        """
        Add a system message to a match chat. Best effort: a failed write is
        logged and None is returned.
        """
        message = ChatMessage(
            id=str(uuid.uuid4()),
            match_id=match_id,
            sender_id=None,
            sender_name="System",
            message=content,
            type=MessageType.SYSTEM,
            timestamp=self.clock.now(),
        )
        try:
            await self.store.create(CHAT_MESSAGES, message.model_dump())
        except Exception as e:
            logger.error(f"Failed to write system message for match {match_id}: {e}")
            return None
        return message

    async def get_messages(self, match_id: str, limit: int = 100) -> List[ChatMessage]:
        """Messages in a match chat, oldest first."""
        docs = await self.store.query(
            CHAT_MESSAGES,
            [Filter("match_id", "==", match_id)],
            order_by="timestamp",
            limit=limit,
        )
        return [ChatMessage(**doc) for doc in docs]
