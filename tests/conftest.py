import asyncio
import sys
from pathlib import Path
from typing import Any, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas import GatewayResponse  # noqa: E402


class FakeGateway:
    """In-process stand-in for the agent gateway.

    ``replies`` are consumed in order; each is a ``GatewayResponse``, a plain
    dict (validated into one) or an exception instance to raise. When
    ``hold`` is set the call blocks until ``release()``.
    """

    def __init__(self, *replies: Any, hold: bool = False):
        self.replies: List[Any] = list(replies)
        self.calls: List[tuple[str, str]] = []
        self._gate = asyncio.Event() if hold else None

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def invoke(self, prompt: str, agent_id: str) -> GatewayResponse:
        self.calls.append((prompt, agent_id))
        if self._gate is not None:
            await self._gate.wait()
        reply = self.replies.pop(0) if self.replies else {"success": False}
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, GatewayResponse):
            return reply
        return GatewayResponse.model_validate(reply)


def agent_reply(result: Any, message: str | None = None) -> GatewayResponse:
    return GatewayResponse.model_validate({"success": True, "response": {"result": result, "message": message}})


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def temp_db(tmp_path):
    import db

    previous = db.DB_PATH
    db_path = tmp_path / "test.db"
    db.use_database(str(db_path))
    db.init()
    yield str(db_path)
    db.use_database(previous)
