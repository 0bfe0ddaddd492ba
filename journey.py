"""Learner session: composition root for progress, controllers and navigation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from agent_gateway import EVALUATOR_AGENT_ID, TUTOR_AGENT_ID, AgentGateway
from catalog import CATALOG, ContentCatalog, Module
from db import SaveStateStore
from engines.challenge_session import ChallengeSession, Gateway
from engines.progression import ProgressionEngine
from engines.register_drill import RegisterDrill
from tutor import TutorConversation

logger = logging.getLogger(__name__)

Screen = Literal["dashboard", "module", "challenge", "achievements"]
SCREENS = ("dashboard", "module", "challenge", "achievements")


def _module_view(engine: ProgressionEngine, module: Module) -> Dict[str, Any]:
    unlocked = engine.is_unlocked(module.id)
    completed = engine.is_completed(module.id)
    return {
        "id": module.id,
        "title": module.title,
        "description": module.description,
        "icon": module.icon,
        "xp": module.xp,
        "unlocked": unlocked,
        "completed": completed,
        "current": unlocked and not completed,
    }


class LearnerSession:
    """Everything a single learner interacts with during one process lifetime."""

    def __init__(
        self,
        engine: ProgressionEngine,
        gateway: Gateway,
        *,
        tutor_agent_id: str = TUTOR_AGENT_ID,
        evaluator_agent_id: str = EVALUATOR_AGENT_ID,
    ) -> None:
        self.engine = engine
        self.catalog: ContentCatalog = engine.catalog
        self.gateway = gateway
        self.screen: Screen = "dashboard"
        self.sidebar_open = True
        self.module_id = 1
        self.concept_index = 0
        self.challenges = ChallengeSession(engine, gateway, evaluator_agent_id)
        self.tutor = TutorConversation(gateway, tutor_agent_id, module_title=self.current_module_title)
        self.drill = RegisterDrill(self.catalog.drill_pairs)

    @classmethod
    def bootstrap(
        cls,
        store: Optional[SaveStateStore] = None,
        gateway: Optional[Gateway] = None,
        catalog: ContentCatalog = CATALOG,
    ) -> "LearnerSession":
        """Load the saved record and wire the engine to write through to ``store``."""

        store = store or SaveStateStore()
        engine = ProgressionEngine(store.load(), store=store, catalog=catalog)
        return cls(engine, gateway or AgentGateway())

    # ----- navigation -------------------------------------------------
    @property
    def module(self) -> Module:
        module = self.catalog.get_module(self.module_id)
        assert module is not None
        return module

    def current_module_title(self) -> Optional[str]:
        return self.module.title

    def open_module(self, module_id: Any) -> bool:
        if not self.engine.is_unlocked(module_id):
            logger.info("Module %r is locked or unknown", module_id)
            return False
        self.module_id = module_id
        self.concept_index = 0
        self.drill.reset()
        self.screen = "module"
        return True

    def continue_learning(self) -> bool:
        module = self.engine.next_module()
        if module is None:
            return False
        return self.open_module(module.id)

    def show_concept(self, index: Any) -> bool:
        concepts = self.catalog.concepts_for(self.module_id)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(concepts):
            return False
        self.concept_index = index
        return True

    def open_challenge(self, module_id: Any, index: Any = 0) -> bool:
        if not self.challenges.select(module_id, index):
            return False
        self.module_id = module_id
        self.screen = "challenge"
        return True

    def go(self, screen: str) -> bool:
        if screen not in SCREENS or (screen == "challenge" and self.challenges.challenge is None):
            return False
        self.screen = screen  # type: ignore[assignment]
        return True

    def toggle_sidebar(self) -> bool:
        self.sidebar_open = not self.sidebar_open
        return self.sidebar_open

    # ----- derived views ----------------------------------------------
    def dashboard(self) -> Dict[str, Any]:
        engine = self.engine
        record = engine.record
        next_module = engine.next_module()
        return {
            "screen": self.screen,
            "xp": record.xp,
            "level": engine.compute_level(),
            "xp_progress": engine.compute_xp_progress_fraction(),
            "xp_progress_percent": round(engine.compute_xp_progress_fraction() * 100, 1),
            "xp_to_next_level": engine.compute_xp_to_next_level(),
            "streak": record.streak,
            "modules_completed": len(record.completed_modules),
            "modules_total": len(self.catalog.modules),
            "challenges_completed": len(record.completed_challenges),
            "achievements_earned": sorted(engine.compute_earned_achievements()),
            "next_module": None if next_module is None else next_module.id,
            "modules": [_module_view(engine, m) for m in self.catalog.modules],
        }

    def module_detail(self, module_id: int) -> Optional[Dict[str, Any]]:
        module = self.catalog.get_module(module_id)
        if module is None:
            return None
        view = _module_view(self.engine, module)
        view["concepts"] = [
            {"title": c.title, "content": c.content, "visual": c.visual}
            for c in self.catalog.concepts_for(module_id)
        ]
        view["challenges"] = [
            {
                "id": c.id,
                "difficulty": c.difficulty,
                "xp": c.xp,
                "completed": self.engine.is_challenge_completed(c.id),
            }
            for c in self.catalog.challenges_for(module_id)
        ]
        if module_id == self.module_id:
            view["concept_index"] = self.concept_index
        return view

    def achievements(self) -> List[Dict[str, Any]]:
        earned = self.engine.compute_earned_achievements()
        return [
            {
                "id": a.id,
                "title": a.title,
                "description": a.description,
                "icon": a.icon,
                "earned": a.id in earned,
            }
            for a in self.catalog.achievements
        ]
