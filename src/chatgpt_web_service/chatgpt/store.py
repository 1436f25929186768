"""Message store backing parentMessageId chaining in key mode."""

from cachetools import TTLCache

import structlog

from chatgpt_web_service.chatgpt.models import ChatMessage

logger = structlog.get_logger()


class MessageStore:
    """Keeps recent messages by id with TTL eviction.

    A conversation is a linked list: each message points at its parent
    through `parent_message_id`, so history is rebuilt by walking back
    from the latest reply.
    """

    def __init__(self, ttl: int = 86400, maxsize: int = 1000) -> None:
        self._cache: TTLCache[str, ChatMessage] = TTLCache(maxsize=maxsize, ttl=ttl)
        logger.info("message_store_initialized", ttl=ttl, maxsize=maxsize)

    def get(self, message_id: str) -> ChatMessage | None:
        return self._cache.get(message_id)

    def put(self, message: ChatMessage) -> None:
        self._cache[message.id] = message

    def history(self, parent_message_id: str | None, max_messages: int = 0) -> list[ChatMessage]:
        """Return the chain ending at `parent_message_id`, oldest first.

        Stops at the first missing or expired link. `max_messages` of 0
        means unlimited.
        """
        chain: list[ChatMessage] = []
        seen: set[str] = set()
        current = parent_message_id
        while current and current not in seen:
            if max_messages and len(chain) >= max_messages:
                break
            message = self.get(current)
            if message is None:
                break
            seen.add(current)
            chain.append(message)
            current = message.parent_message_id

        chain.reverse()
        logger.debug(
            "message_history_loaded",
            parent_message_id=parent_message_id,
            message_count=len(chain),
        )
        return chain
