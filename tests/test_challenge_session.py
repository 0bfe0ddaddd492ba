import asyncio
import json

import pytest

from catalog import ContentCatalog
from conftest import FakeGateway, agent_reply
from engines.challenge_session import ChallengeSession, SessionState, build_evaluation_prompt
from engines.progression import ProgressionEngine
from schemas import ProgressRecord

EVALUATOR = "evaluator-agent"


def _session(gateway, record=None):
    engine = ProgressionEngine(record or ProgressRecord())
    return ChallengeSession(engine, gateway, EVALUATOR)


def _passing(**extra):
    payload = {"is_correct": True, "score": 90, "pass_fail": "PASS", "feedback": "Nice"}
    payload.update(extra)
    return agent_reply(payload)


def test_pass_records_progress_and_unlocks_next_module():
    gateway = FakeGateway(_passing(xp_awarded=50))
    session = _session(gateway, ProgressRecord())
    # module 1 has two challenges; mark the first done so c1_2 is the last one
    session.engine.record_challenge_pass("c1_1", 1, 0)

    assert session.select(1, 1)
    session.update_draft("mov ecx, eax\nmov eax, ebx\nmov ebx, ecx")
    result = asyncio.run(session.submit())

    assert result is not None and result.passed
    assert session.state is SessionState.PASSED
    assert session.busy is False
    record = session.engine.record
    assert record.xp == 50
    assert record.completed_modules == {1}
    assert record.completed_challenges == {"c1_1", "c1_2"}
    assert record.streak == 1
    assert session.engine.is_unlocked(2)


def test_sole_challenge_scenario(tmp_path):
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text(
        json.dumps(
            {
                "modules": [
                    {"id": 1, "title": "Registers 101", "xp": 100},
                    {"id": 2, "title": "Memory", "xp": 150},
                ],
                "challenges": [
                    {"id": "only", "module_id": 1, "prompt": "mov eax, 42", "xp": 25},
                    {"id": "later", "module_id": 2, "prompt": "lea", "xp": 25},
                ],
            }
        ),
        encoding="utf-8",
    )
    engine = ProgressionEngine(ProgressRecord(), catalog=ContentCatalog(catalog_path))
    session = ChallengeSession(engine, FakeGateway(_passing(xp_awarded=50)), EVALUATOR)
    assert session.select(1)
    session.update_draft("mov eax, 42")

    asyncio.run(session.submit())

    assert engine.record == ProgressRecord(xp=50, completed_modules={1}, completed_challenges={"only"}, streak=1)
    assert engine.is_unlocked(2)


def test_prompt_contains_challenge_and_code():
    gateway = FakeGateway(_passing())
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    asyncio.run(session.submit())

    prompt, agent_id = gateway.calls[0]
    assert agent_id == EVALUATOR
    assert prompt == build_evaluation_prompt(session.challenge, "mov eax, 42")
    assert "```asm\nmov eax, 42\n```" in prompt


def test_catalog_xp_used_when_reply_has_none():
    gateway = FakeGateway(_passing(xp_awarded=0))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    asyncio.run(session.submit())

    assert session.engine.xp == session.challenge.xp == 50


def test_is_correct_alone_counts_as_pass():
    gateway = FakeGateway(agent_reply(json.dumps({"is_correct": True})))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    result = asyncio.run(session.submit())

    assert result.pass_fail == "FAIL"
    assert result.passed
    assert session.engine.is_challenge_completed("c1_1")


def test_repeat_pass_does_not_award_xp_twice():
    gateway = FakeGateway(_passing(xp_awarded=50), _passing(xp_awarded=50))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")
    asyncio.run(session.submit())

    session.select(1)
    session.update_draft("mov eax, 42 ; again")
    asyncio.run(session.submit())

    assert session.engine.xp == 50


@pytest.mark.parametrize(
    "reply, error",
    [
        ({"success": False}, "Service unavailable"),
        (ConnectionError("boom"), "Network error"),
    ],
)
def test_gateway_failure_resolves_to_failed(reply, error):
    gateway = FakeGateway(reply)
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    result = asyncio.run(session.submit())

    assert session.state is SessionState.FAILED
    assert result.pass_fail == "FAIL"
    assert result.score == 0
    assert result.errors == [error]
    assert session.busy is False
    assert session.engine.xp == 0


def test_malformed_payload_is_normalized():
    gateway = FakeGateway(agent_reply({"score": "high", "hints": "not a list", "errors": [1, "bad"], "is_correct": "yes"}))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    result = asyncio.run(session.submit())

    assert result.score == 0
    assert result.hints == []
    assert result.errors == ["bad"]
    assert not result.passed
    assert session.state is SessionState.FAILED


def test_blank_draft_and_missing_challenge_are_rejected():
    gateway = FakeGateway()
    session = _session(gateway)
    assert asyncio.run(session.submit()) is None

    session.select(1)
    session.update_draft("   ")
    assert asyncio.run(session.submit()) is None
    assert gateway.calls == []


def test_concurrent_submission_is_rejected():
    async def scenario():
        gateway = FakeGateway(_passing(), hold=True)
        session = _session(gateway)
        session.select(1)
        session.update_draft("mov eax, 42")

        first = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        assert session.busy
        assert session.state is SessionState.EVALUATING
        assert await session.submit() is None

        gateway.release()
        result = await first
        return session, gateway, result

    session, gateway, result = asyncio.run(scenario())
    assert result.passed
    assert len(gateway.calls) == 1
    assert session.busy is False


def test_result_recorded_against_original_challenge_after_switch():
    async def scenario():
        gateway = FakeGateway(_passing(xp_awarded=50), hold=True)
        session = _session(gateway)
        session.select(1, 0)
        session.update_draft("mov eax, 42")

        pending = asyncio.create_task(session.submit())
        await asyncio.sleep(0)
        session.select(1, 1)
        gateway.release()
        await pending
        return session

    session = asyncio.run(scenario())
    assert session.engine.is_challenge_completed("c1_1")
    assert session.challenge.id == "c1_2"
    assert session.result is None
    assert session.state is SessionState.IDLE


def test_hints_reveal_in_order_and_stop_at_end():
    gateway = FakeGateway(agent_reply({"pass_fail": "FAIL", "hints": ["first", "second"]}))
    session = _session(gateway)
    session.select(1)
    session.update_draft("nop")
    asyncio.run(session.submit())

    assert session.visible_hints == []
    assert session.reveal_hint() == "first"
    assert session.reveal_hint() == "second"
    assert session.reveal_hint() is None
    assert session.hints_shown == 2
    assert session.visible_hints == ["first", "second"]


def test_hints_hidden_on_pass():
    gateway = FakeGateway(_passing(hints=["unused"]))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")
    asyncio.run(session.submit())

    assert session.reveal_hint() is None
    assert session.visible_hints == []


def test_retry_keeps_draft_and_clears_result():
    gateway = FakeGateway(agent_reply({"pass_fail": "FAIL", "hints": ["h"]}))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 41")
    asyncio.run(session.submit())
    session.reveal_hint()

    assert session.retry()
    assert session.state is SessionState.IDLE
    assert session.result is None
    assert session.hints_shown == 0
    assert session.draft == "mov eax, 41"
    assert not session.retry()


def test_selection_respects_locks_and_bounds():
    session = _session(FakeGateway())
    assert not session.select(2)
    assert not session.select(1, 5)
    assert not session.select(42)
    assert session.select(1, 0)
    assert session.has_next_challenge()
    assert session.next_challenge()
    assert session.challenge.id == "c1_2"
    assert not session.next_challenge()


def test_perfect_score_triggers_event():
    gateway = FakeGateway(_passing(score=100))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")
    asyncio.run(session.submit())

    assert "perfect" in session.engine.compute_earned_achievements()


def test_lowercase_verdict_is_a_fail():
    gateway = FakeGateway(agent_reply({"pass_fail": "pass", "is_correct": False, "xp_awarded": 50}))
    session = _session(gateway)
    session.select(1)
    session.update_draft("mov eax, 42")

    result = asyncio.run(session.submit())

    assert not result.passed
    assert result.pass_fail == "pass"
    assert session.state is SessionState.FAILED
    assert session.engine.xp == 0
    assert not session.engine.is_challenge_completed("c1_1")


def test_raising_listener_does_not_break_submission():
    def broken(record):
        raise RuntimeError("listener failed")

    gateway = FakeGateway(_passing(xp_awarded=50))
    session = _session(gateway)
    session.engine.subscribe(broken)
    session.select(1)
    session.update_draft("mov eax, 42")

    result = asyncio.run(session.submit())

    assert result.passed
    assert session.state is SessionState.PASSED
    assert session.result is result
    assert session.busy is False
    assert session.engine.xp == 50
