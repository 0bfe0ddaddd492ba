"""Lifecycle of a single challenge attempt.

``idle -> evaluating -> passed | failed``. Only one evaluation may be in
flight; a second submission while busy is rejected, not queued. Every gateway
failure ends in ``failed`` with a synthetic result so the learner can retry.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Protocol

from catalog import Challenge
from engines.progression import ProgressionEngine
from schemas import EvaluationResult, GatewayResponse, parse_agent_result

logger = logging.getLogger(__name__)

PERFECT_SCORE_EVENT = "perfect_score"

EVALUATION_PROMPT = (
    "Challenge: {prompt}\n\n"
    "User's submitted code:\n```asm\n{code}\n```\n\n"
    "Evaluate this submission for correctness."
)


class Gateway(Protocol):
    def invoke(self, prompt: str, agent_id: str) -> Awaitable[GatewayResponse]: ...


class SessionState(str, enum.Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class _Attempt:
    challenge: Challenge
    code: str


def build_evaluation_prompt(challenge: Challenge, code: str) -> str:
    return EVALUATION_PROMPT.format(prompt=challenge.prompt, code=code)


class ChallengeSession:
    def __init__(self, engine: ProgressionEngine, gateway: Gateway, agent_id: str) -> None:
        self.engine = engine
        self.gateway = gateway
        self.agent_id = agent_id
        self.module_id: Optional[int] = None
        self.index = 0
        self.challenge: Optional[Challenge] = None
        self.draft = ""
        self.result: Optional[EvaluationResult] = None
        self.hints_shown = 0
        self.state = SessionState.IDLE
        self.busy = False

    # ----- selection --------------------------------------------------
    def select(self, module_id: Any, index: Any = 0) -> bool:
        """Open challenge ``index`` of ``module_id``; locked or unknown ids are ignored."""

        if not self.engine.is_unlocked(module_id):
            logger.warning("Cannot open challenges of locked or unknown module %r", module_id)
            return False
        challenges = self.engine.catalog.challenges_for(module_id)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(challenges):
            logger.warning("Module %s has no challenge at index %r", module_id, index)
            return False

        self.module_id = module_id
        self.index = index
        self.challenge = challenges[index]
        self.draft = ""
        self._reset_result()
        return True

    def next_challenge(self) -> bool:
        if self.module_id is None:
            return False
        return self.select(self.module_id, self.index + 1)

    def has_next_challenge(self) -> bool:
        if self.module_id is None:
            return False
        return self.index + 1 < len(self.engine.catalog.challenges_for(self.module_id))

    def update_draft(self, code: str) -> None:
        self.draft = code if isinstance(code, str) else ""

    def _reset_result(self) -> None:
        self.result = None
        self.hints_shown = 0
        if not self.busy:
            self.state = SessionState.IDLE

    # ----- evaluation -------------------------------------------------
    async def submit(self) -> Optional[EvaluationResult]:
        """Send the draft to the evaluator; returns ``None`` when rejected."""

        if self.busy:
            logger.info("Submission rejected: an evaluation is already in flight")
            return None
        if self.challenge is None or not self.draft.strip():
            return None

        attempt = _Attempt(challenge=self.challenge, code=self.draft)
        self.busy = True
        self.state = SessionState.EVALUATING
        self.result = None
        self.hints_shown = 0
        try:
            result = await self._evaluate(attempt)
            self._apply(attempt, result)
        finally:
            self.busy = False
        return result

    async def _evaluate(self, attempt: _Attempt) -> EvaluationResult:
        prompt = build_evaluation_prompt(attempt.challenge, attempt.code)
        try:
            response = await self.gateway.invoke(prompt, self.agent_id)
        except Exception:
            logger.warning("Evaluator call for %s failed", attempt.challenge.id, exc_info=True)
            return EvaluationResult.unavailable("Connection error.", "Network error")

        if not response.success:
            logger.warning("Evaluator reported failure for %s", attempt.challenge.id)
            return EvaluationResult.unavailable("Evaluation failed. Try again.", "Service unavailable")

        data = parse_agent_result(response.result)
        return EvaluationResult.from_result(data)

    def _apply(self, attempt: _Attempt, result: EvaluationResult) -> None:
        challenge = attempt.challenge
        if result.passed:
            if self.engine.is_challenge_completed(challenge.id):
                logger.info("Challenge %s already completed; no XP awarded", challenge.id)
            else:
                xp = result.xp_awarded if result.xp_awarded > 0 else challenge.xp
                self.engine.record_challenge_pass(challenge.id, challenge.module_id, xp)
            if result.perfect:
                self.engine.trigger_event(PERFECT_SCORE_EVENT)

        # Progress above is recorded for the attempted challenge regardless;
        # the verdict is only shown if that challenge is still open.
        if self.challenge is not challenge:
            logger.info("Dropping verdict for %s: learner moved on", challenge.id)
            self.state = SessionState.IDLE
            return
        self.result = result
        self.state = SessionState.PASSED if result.passed else SessionState.FAILED

    # ----- after the verdict ------------------------------------------
    def reveal_hint(self) -> Optional[str]:
        if self.result is None or self.result.passed:
            return None
        if self.hints_shown >= len(self.result.hints):
            return None
        hint = self.result.hints[self.hints_shown]
        self.hints_shown += 1
        return hint

    @property
    def visible_hints(self) -> List[str]:
        if self.result is None or self.result.passed:
            return []
        return self.result.hints[: self.hints_shown]

    def retry(self) -> bool:
        if self.state is not SessionState.FAILED:
            return False
        self._reset_result()
        return True

    def snapshot(self) -> dict:
        challenge = self.challenge
        return {
            "state": self.state.value,
            "busy": self.busy,
            "module_id": self.module_id,
            "index": self.index,
            "challenge": None
            if challenge is None
            else {
                "id": challenge.id,
                "prompt": challenge.prompt,
                "difficulty": challenge.difficulty,
                "xp": challenge.xp,
                "completed": self.engine.is_challenge_completed(challenge.id),
            },
            "draft": self.draft,
            "result": None if self.result is None else self.result.model_dump(),
            "hints": self.visible_hints,
            "hints_total": 0 if self.result is None else len(self.result.hints),
            "has_next": self.has_next_challenge(),
        }
