"""Conversation controller for the assembly tutor agent."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from schemas import ChatMessage, GatewayResponse, TutorReply, parse_agent_result

logger = logging.getLogger(__name__)

FAILED_TURN_MESSAGE = "Sorry, I had trouble with that. Please try again."
CONNECTION_ERROR_MESSAGE = "Connection error. Please try again."


class Gateway(Protocol):
    def invoke(self, prompt: str, agent_id: str) -> Awaitable[GatewayResponse]: ...


def build_tutor_prompt(message: str, module_title: Optional[str]) -> str:
    if not module_title:
        return message
    return f"[Module: {module_title}] {message}"


class TutorConversation:
    """Append-only chat transcript with at most one exchange in flight.

    The learner's message is appended before the agent is called and is never
    retracted; a failed turn appends a single tutor-role error message.
    """

    def __init__(
        self,
        gateway: Gateway,
        agent_id: str,
        module_title: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self.gateway = gateway
        self.agent_id = agent_id
        self._module_title = module_title
        self._messages: List[ChatMessage] = []
        self.busy = False
        self.is_open = False

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    # panel visibility never touches the transcript
    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def toggle(self) -> bool:
        self.is_open = not self.is_open
        return self.is_open

    async def send(self, text: Any, module_title: Optional[str] = None) -> bool:
        """Run one exchange; returns ``False`` when the message is rejected."""

        if not isinstance(text, str) or not text.strip():
            return False
        if self.busy:
            logger.info("Tutor message rejected: a reply is still pending")
            return False

        if module_title is None and self._module_title is not None:
            module_title = self._module_title()
        prompt = build_tutor_prompt(text, module_title)

        self._messages.append(ChatMessage(role="user", text=text))
        self.busy = True
        try:
            self._messages.append(await self._exchange(prompt))
        finally:
            self.busy = False
        return True

    async def ask_follow_up(self, question: Any) -> bool:
        return await self.send(question)

    async def _exchange(self, prompt: str) -> ChatMessage:
        try:
            response = await self.gateway.invoke(prompt, self.agent_id)
        except Exception:
            logger.warning("Tutor call failed", exc_info=True)
            return ChatMessage(role="tutor", text=CONNECTION_ERROR_MESSAGE)

        if not response.success:
            logger.warning("Tutor agent reported failure")
            return ChatMessage(role="tutor", text=FAILED_TURN_MESSAGE)

        reply = TutorReply.from_result(parse_agent_result(response.result), response.message)
        return ChatMessage(
            role="tutor",
            text=reply.explanation,
            code=reply.code_example,
            analogy=reply.analogy,
            follow_ups=reply.follow_up_questions,
        )
