# app.py - Assembly Quest local session API
# - Single learner, single process; progress lives in the local save store
# - Tutor and evaluator agents are reached through agent_gateway

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from journey import LearnerSession

logger = logging.getLogger(__name__)

SESSION: Optional[LearnerSession] = None


@asynccontextmanager
async def _lifespan(_: FastAPI):
    global SESSION
    try:
        from env_validation import validate_environment
        validate_environment()

        if SESSION is None:
            SESSION = LearnerSession.bootstrap()
        logger.info("Session ready: xp=%s level=%s", SESSION.engine.xp, SESSION.engine.compute_level())
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Assembly Quest", version="1.0.0", lifespan=_lifespan)


def _session() -> LearnerSession:
    global SESSION
    if SESSION is None:
        SESSION = LearnerSession.bootstrap()
    return SESSION


class ScreenRequest(BaseModel):
    screen: str


class SelectChallengeRequest(BaseModel):
    module_id: int
    index: int = 0


class DraftRequest(BaseModel):
    code: str


class TutorMessageRequest(BaseModel):
    text: str


class PanelRequest(BaseModel):
    open: Optional[bool] = None


class DrillClickRequest(BaseModel):
    item: str


@app.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok"}


@app.get("/dashboard")
async def dashboard() -> dict[str, Any]:
    return _session().dashboard()


@app.post("/screen")
async def change_screen(req: ScreenRequest) -> dict[str, Any]:
    session = _session()
    if not session.go(req.screen):
        raise HTTPException(status_code=400, detail=f"Cannot switch to screen {req.screen!r}")
    return {"screen": session.screen}


@app.post("/sidebar")
async def toggle_sidebar() -> dict[str, Any]:
    return {"open": _session().toggle_sidebar()}


@app.get("/modules/{module_id}")
async def module_detail(module_id: int) -> dict[str, Any]:
    detail = _session().module_detail(module_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Unknown module")
    return detail


@app.post("/modules/{module_id}/open")
async def open_module(module_id: int) -> dict[str, Any]:
    session = _session()
    if session.catalog.get_module(module_id) is None:
        raise HTTPException(status_code=404, detail="Unknown module")
    if not session.open_module(module_id):
        raise HTTPException(status_code=403, detail="Module is locked")
    return session.module_detail(module_id) or {}


@app.post("/continue")
async def continue_learning() -> dict[str, Any]:
    session = _session()
    if not session.continue_learning():
        raise HTTPException(status_code=404, detail="Every module is completed")
    return {"module_id": session.module_id, "screen": session.screen}


@app.post("/concepts/{index}")
async def show_concept(index: int) -> dict[str, Any]:
    session = _session()
    if not session.show_concept(index):
        raise HTTPException(status_code=404, detail="Unknown concept page")
    return {"module_id": session.module_id, "concept_index": session.concept_index}


@app.get("/achievements")
async def achievements() -> list[dict[str, Any]]:
    return _session().achievements()


# ----- challenges -----------------------------------------------------

@app.get("/challenges/current")
async def current_challenge() -> dict[str, Any]:
    return _session().challenges.snapshot()


@app.post("/challenges/select")
async def select_challenge(req: SelectChallengeRequest) -> dict[str, Any]:
    session = _session()
    if not session.open_challenge(req.module_id, req.index):
        raise HTTPException(status_code=404, detail="Challenge unavailable")
    return session.challenges.snapshot()


@app.put("/challenges/draft")
async def update_draft(req: DraftRequest) -> dict[str, Any]:
    challenges = _session().challenges
    challenges.update_draft(req.code)
    return challenges.snapshot()


@app.post("/challenges/submit")
async def submit_challenge() -> dict[str, Any]:
    session = _session()
    challenges = session.challenges
    if challenges.busy:
        raise HTTPException(status_code=409, detail="An evaluation is already running")
    result = await challenges.submit()
    if result is None:
        raise HTTPException(status_code=409, detail="Nothing to submit")
    return {
        "challenge": challenges.snapshot(),
        "result": result.model_dump(),
        "passed": result.passed,
        "progress": session.dashboard(),
    }


@app.post("/challenges/hint")
async def reveal_hint() -> dict[str, Any]:
    challenges = _session().challenges
    hint = challenges.reveal_hint()
    if hint is None:
        raise HTTPException(status_code=409, detail="No more hints")
    return {"hint": hint, "hints": challenges.visible_hints}


@app.post("/challenges/retry")
async def retry_challenge() -> dict[str, Any]:
    challenges = _session().challenges
    if not challenges.retry():
        raise HTTPException(status_code=409, detail="Nothing to retry")
    return challenges.snapshot()


@app.post("/challenges/next")
async def next_challenge() -> dict[str, Any]:
    challenges = _session().challenges
    if not challenges.next_challenge():
        raise HTTPException(status_code=404, detail="No further challenge in this module")
    return challenges.snapshot()


# ----- tutor ----------------------------------------------------------

def _transcript(session: LearnerSession) -> dict[str, Any]:
    tutor = session.tutor
    return {
        "open": tutor.is_open,
        "busy": tutor.busy,
        "messages": [m.model_dump() for m in tutor.messages],
    }


@app.get("/tutor")
async def tutor_transcript() -> dict[str, Any]:
    return _transcript(_session())


@app.post("/tutor/messages")
async def tutor_message(req: TutorMessageRequest) -> dict[str, Any]:
    session = _session()
    if session.tutor.busy:
        raise HTTPException(status_code=409, detail="The tutor is still answering")
    if not await session.tutor.send(req.text):
        raise HTTPException(status_code=409, detail="Message rejected")
    return _transcript(session)


@app.post("/tutor/panel")
async def tutor_panel(req: PanelRequest) -> dict[str, Any]:
    session = _session()
    if req.open is None:
        session.tutor.toggle()
    elif req.open:
        session.tutor.open()
    else:
        session.tutor.close()
    return _transcript(session)


# ----- register drill -------------------------------------------------

@app.post("/drill/click")
async def drill_click(req: DrillClickRequest) -> dict[str, Any]:
    drill = _session().drill
    drill.click(req.item)
    return drill.snapshot()
