"""Progression engine for module unlocking, XP, levels and achievements.

The engine owns the authoritative :class:`~schemas.ProgressRecord`. Every
mutation is written through to the save-state store and broadcast to
subscribers; everything else (levels, unlock flags, achievements) is derived
on read so it can never drift from the record.

Malformed input is tolerated: unknown ids, locked modules and invalid XP
amounts are logged and ignored rather than raised, because a stray UI event
must never corrupt saved progress.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Protocol, Set

from catalog import CATALOG, Achievement, ContentCatalog, Module
from schemas import ProgressRecord

_LOGGER = logging.getLogger(__name__)

XP_PER_LEVEL = 500

Listener = Callable[[ProgressRecord], None]


class ProgressSink(Protocol):
    def save(self, record: ProgressRecord) -> Any: ...


def compute_level(xp: int) -> int:
    return xp // XP_PER_LEVEL + 1


def compute_xp_progress_fraction(xp: int) -> float:
    """Fraction of the current level already earned, in ``[0, 1)``."""

    return (xp % XP_PER_LEVEL) / XP_PER_LEVEL


def compute_xp_to_next_level(xp: int) -> int:
    return XP_PER_LEVEL - (xp % XP_PER_LEVEL)


def _is_valid_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ProgressionEngine:
    """Single writer of the learner's progress record.

    Parameters
    ----------
    record:
        Starting record, typically the result of ``SaveStateStore.load()``.
        A zero-value record is used when omitted.
    store:
        Optional sink that receives the full record after every mutation.
    catalog:
        Content catalog providing the module/challenge/achievement rules.
    """

    def __init__(
        self,
        record: Optional[ProgressRecord] = None,
        store: Optional[ProgressSink] = None,
        catalog: ContentCatalog = CATALOG,
    ) -> None:
        self._record = record.model_copy(deep=True) if record is not None else ProgressRecord()
        self._store = store
        self.catalog = catalog
        self._listeners: List[Listener] = []

    # ----- state ------------------------------------------------------
    @property
    def record(self) -> ProgressRecord:
        """Return a copy of the current record; mutate through the engine only."""

        return self._record.model_copy(deep=True)

    @property
    def xp(self) -> int:
        return self._record.xp

    @property
    def streak(self) -> int:
        return self._record.streak

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications; returns an unsubscribe hook."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, reason: str) -> None:
        _LOGGER.debug("progress changed (%s): xp=%s", reason, self._record.xp)
        snapshot = self.record
        # the in-memory record stays authoritative whatever the sinks do
        if self._store is not None:
            try:
                self._store.save(snapshot)
            except Exception:
                _LOGGER.warning("Progress store rejected %s", reason, exc_info=True)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _LOGGER.warning("Progress listener %r failed on %s", listener, reason, exc_info=True)

    # ----- unlock rules -----------------------------------------------
    def is_unlocked(self, module_id: Any) -> bool:
        if not _is_valid_id(module_id) or self.catalog.get_module(module_id) is None:
            return False
        return module_id == 1 or (module_id - 1) in self._record.completed_modules

    def is_completed(self, module_id: Any) -> bool:
        return module_id in self._record.completed_modules

    def is_challenge_completed(self, challenge_id: Any) -> bool:
        return challenge_id in self._record.completed_challenges

    def next_module(self) -> Optional[Module]:
        """First unlocked module that is not yet completed."""

        for module in self.catalog.modules:
            if self.is_unlocked(module.id) and not self.is_completed(module.id):
                return module
        return None

    # ----- mutations --------------------------------------------------
    def add_xp(self, amount: Any) -> None:
        if not _is_valid_id(amount) or amount < 0:
            _LOGGER.warning("Ignoring invalid XP amount: %r", amount)
            return
        if amount == 0:
            return
        self._record.xp += amount
        self._commit("xp")

    def record_challenge_pass(self, challenge_id: Any, module_id: Any, xp_awarded: Any) -> None:
        """Mark ``challenge_id`` complete and credit ``xp_awarded``.

        Completion is idempotent; the module is completed once all of its
        catalog challenges are done. XP is added on every call, so callers
        must only report a challenge once.
        """

        challenge = self.catalog.get_challenge(challenge_id)
        if challenge is None or challenge.module_id != module_id:
            _LOGGER.warning(
                "Ignoring pass for unknown challenge %r in module %r", challenge_id, module_id
            )
            return
        if not self.is_unlocked(module_id):
            _LOGGER.warning("Ignoring pass for challenge %s: module %s is locked", challenge_id, module_id)
            return
        if not _is_valid_id(xp_awarded) or xp_awarded < 0:
            _LOGGER.warning("Ignoring pass for challenge %s with invalid XP %r", challenge_id, xp_awarded)
            return

        self._record.completed_challenges.add(challenge.id)
        self._record.xp += xp_awarded

        required = {c.id for c in self.catalog.challenges_for(module_id)}
        if module_id not in self._record.completed_modules and required <= self._record.completed_challenges:
            self._record.completed_modules.add(module_id)
            _LOGGER.info("Module %s completed", module_id)

        self._commit(f"challenge {challenge.id}")

    def trigger_event(self, event: Any) -> None:
        """Record a manual achievement event such as ``perfect_score``."""

        if event not in self.catalog.achievement_events():
            _LOGGER.warning("Ignoring unknown achievement event: %r", event)
            return
        if event in self._record.events:
            return
        self._record.events.add(event)
        self._commit(f"event {event}")

    # ----- derived values ---------------------------------------------
    def compute_level(self) -> int:
        return compute_level(self._record.xp)

    def compute_xp_progress_fraction(self) -> float:
        return compute_xp_progress_fraction(self._record.xp)

    def compute_xp_to_next_level(self) -> int:
        return compute_xp_to_next_level(self._record.xp)

    def _achievement_holds(self, achievement: Achievement) -> bool:
        if achievement.module_required is not None:
            return achievement.module_required in self._record.completed_modules
        if achievement.xp_required is not None:
            return self._record.xp >= achievement.xp_required
        return achievement.event in self._record.events

    def compute_earned_achievements(self) -> Set[str]:
        return {a.id for a in self.catalog.achievements if self._achievement_holds(a)}
