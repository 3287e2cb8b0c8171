from __future__ import annotations

import asyncio
from collections.abc import Callable

from pydantic_ai.messages import ModelMessage

from termagent.errors import TurnInProgressError
from termagent.llms import ChatModel
from termagent.llms.agent import ConversationEngine
from termagent.log import logger

ModelFactory = Callable[[str], ChatModel]


class ChatSession:
    """Owns one conversation and serialises turns against it.

    Only one ``send_message`` may run at a time; ``cancel`` aborts the running
    turn, which rolls the conversation back.
    """

    def __init__(self, engine: ConversationEngine, model_factory: ModelFactory | None = None) -> None:
        self.engine = engine
        self.model_factory = model_factory
        self.conversation: list[ModelMessage] = []
        self._lock = asyncio.Lock()
        self._turn: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def send_message(self, text: str) -> None:
        if self._lock.locked():
            raise TurnInProgressError("A turn is already running for this conversation")

        async with self._lock:
            self._turn = asyncio.create_task(self.engine.send_message(text, self.conversation))
            try:
                await self._turn
            finally:
                self._turn = None

    def cancel(self) -> bool:
        if self._turn is None or self._turn.done():
            return False
        logger.info("Cancelling running turn")
        return self._turn.cancel()

    def set_model(self, model_id: str) -> None:
        if self.model_factory is None:
            raise ValueError("This session cannot switch models")
        self.engine.set_model(self.model_factory(model_id))

    def clear(self) -> None:
        if self._lock.locked():
            raise TurnInProgressError("Cannot clear the conversation while a turn is running")
        self.conversation.clear()
