"""HTTP client for the remote reasoning agents (tutor and evaluator)."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from env_validation import (
    DEFAULT_EVALUATOR_AGENT_ID,
    DEFAULT_GATEWAY_URL,
    DEFAULT_TUTOR_AGENT_ID,
    get_env_bool,
    get_env_float,
)
from schemas import GatewayResponse, parse_json_safe

logger = logging.getLogger(__name__)

TUTOR_AGENT_ID = os.getenv("TUTOR_AGENT_ID", DEFAULT_TUTOR_AGENT_ID)
EVALUATOR_AGENT_ID = os.getenv("EVALUATOR_AGENT_ID", DEFAULT_EVALUATOR_AGENT_ID)


class AgentGatewayError(RuntimeError):
    """Transport-level failure: the request never produced a usable reply."""


class AgentGateway:
    """Send a prompt plus an agent identifier to the reasoning service.

    ``invoke_sync`` performs the blocking HTTP call. ``invoke`` runs it in a
    worker thread so callers on the event loop stay responsive. Transport
    failures raise :class:`AgentGatewayError`; service-reported failures come
    back as ``GatewayResponse(success=False)``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        verify_tls: Optional[bool] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url or os.getenv("AGENT_GATEWAY_URL", DEFAULT_GATEWAY_URL)
        self.timeout = timeout if timeout is not None else get_env_float("AGENT_GATEWAY_TIMEOUT", 120.0)
        self.api_key = api_key if api_key is not None else os.getenv("AGENT_GATEWAY_API_KEY", "")
        self.verify_tls = verify_tls if verify_tls is not None else get_env_bool("AGENT_GATEWAY_VERIFY_TLS", True)
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def invoke_sync(self, prompt: str, agent_id: str) -> GatewayResponse:
        payload: Dict[str, Any] = {"message": prompt, "agent_id": agent_id}
        start = time.perf_counter()
        try:
            r = self._session.post(
                self.url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as e:
            raise AgentGatewayError(f"Agent gateway unreachable: {e}") from e
        finally:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.debug("agent=%s latency_ms=%s prompt_chars=%s", agent_id, latency_ms, len(prompt))

        if r.status_code >= 400:
            logger.warning("Agent %s answered HTTP %s: %s", agent_id, r.status_code, r.text[:300])
            return GatewayResponse(success=False)

        try:
            return parse_json_safe(r.text, GatewayResponse)
        except (ValidationError, ValueError) as e:
            logger.warning("Agent %s returned an unreadable envelope: %s", agent_id, e)
            return GatewayResponse(success=False)

    async def invoke(self, prompt: str, agent_id: str) -> GatewayResponse:
        return await asyncio.to_thread(self.invoke_sync, prompt, agent_id)

    def close(self) -> None:
        self._session.close()
