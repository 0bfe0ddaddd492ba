"""Content catalog loader for modules, concepts, challenges and achievements."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class CatalogConfigError(ValueError):
    """Raised when ``catalog.json`` contains invalid data."""


@dataclass(frozen=True)
class Module:
    """Immutable representation of a learning module."""

    id: int
    title: str
    description: str
    icon: str
    xp: int
    position: int


@dataclass(frozen=True)
class ConceptPage:
    title: str
    content: str
    visual: str


@dataclass(frozen=True)
class Challenge:
    """A gradable task that belongs to exactly one module."""

    id: str
    module_id: int
    prompt: str
    difficulty: str
    xp: int


@dataclass(frozen=True)
class Achievement:
    """Badge definition with exactly one unlock predicate.

    ``module_required`` unlocks on module completion, ``xp_required`` on an XP
    threshold and ``event`` on a manually triggered event such as
    ``perfect_score``.
    """

    id: str
    title: str
    description: str
    icon: str
    module_required: Optional[int] = None
    xp_required: Optional[int] = None
    event: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.module_required is not None:
            return "module"
        if self.xp_required is not None:
            return "xp"
        return "event"


@dataclass(frozen=True)
class DrillPair:
    register: str
    role: str


def _require_text(entry: Mapping[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if value is None or not str(value).strip():
        raise CatalogConfigError(f"{where} is missing a non-empty '{key}'")
    return str(value).strip()


def _require_int(entry: Mapping[str, Any], key: str, where: str, *, minimum: int = 0) -> int:
    value = entry.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise CatalogConfigError(f"{where} has non-integer '{key}'")
    if value < minimum:
        raise CatalogConfigError(f"{where} '{key}' must be >= {minimum}")
    return value


class ContentCatalog:
    """Load the static course content from ``catalog.json``."""

    def __init__(self, path: str | Path | None = None) -> None:
        base_path = Path(__file__).resolve().parent
        self.path = Path(path) if path is not None else base_path / "content" / "catalog.json"
        self._modules: List[Module] = []
        self._concepts: Dict[int, Tuple[ConceptPage, ...]] = {}
        self._challenges: List[Challenge] = []
        self._achievements: List[Achievement] = []
        self._drill: List[DrillPair] = []
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload the catalog from disk and validate the structure."""

        if not self.path.exists():
            raise FileNotFoundError(f"Catalog file not found: {self.path}")

        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, dict):
            raise CatalogConfigError("Catalog file must contain a JSON object")

        modules = self._parse_modules(raw.get("modules"))
        module_ids = {module.id for module in modules}
        self._concepts = self._parse_concepts(raw.get("concepts") or {}, module_ids)
        self._challenges = self._parse_challenges(raw.get("challenges"), module_ids)
        self._achievements = self._parse_achievements(raw.get("achievements") or [], module_ids)
        self._drill = self._parse_drill(raw.get("register_drill") or [])
        self._modules = modules

    @staticmethod
    def _parse_modules(raw: Any) -> List[Module]:
        if not isinstance(raw, list) or not raw:
            raise CatalogConfigError("Catalog must define a non-empty 'modules' list")

        modules: List[Module] = []
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise CatalogConfigError(f"Module #{idx} must be a JSON object")
            where = f"Module #{idx}"
            module_id = _require_int(entry, "id", where, minimum=1)
            modules.append(
                Module(
                    id=module_id,
                    title=_require_text(entry, "title", where),
                    description=str(entry.get("description", "")).strip(),
                    icon=str(entry.get("icon", "")).strip(),
                    xp=_require_int(entry, "xp", where),
                    position=idx,
                )
            )

        # Unlocking walks id - 1, so ids must form a dense sequence from 1.
        ids = sorted(module.id for module in modules)
        if ids != list(range(1, len(modules) + 1)):
            raise CatalogConfigError("Module ids must be a dense sequence starting at 1")
        modules.sort(key=lambda module: module.id)
        return modules

    @staticmethod
    def _parse_concepts(raw: Any, module_ids: set[int]) -> Dict[int, Tuple[ConceptPage, ...]]:
        if not isinstance(raw, dict):
            raise CatalogConfigError("'concepts' must map module ids to page lists")

        concepts: Dict[int, Tuple[ConceptPage, ...]] = {}
        for key, pages in raw.items():
            try:
                module_id = int(key)
            except (TypeError, ValueError) as exc:
                raise CatalogConfigError(f"Concept key {key!r} is not a module id") from exc
            if module_id not in module_ids:
                raise CatalogConfigError(f"Concepts reference unknown module {module_id}")
            if not isinstance(pages, list):
                raise CatalogConfigError(f"Concepts for module {module_id} must be a list")
            parsed: List[ConceptPage] = []
            for idx, page in enumerate(pages, start=1):
                where = f"Concept {module_id}.{idx}"
                if not isinstance(page, dict):
                    raise CatalogConfigError(f"{where} must be a JSON object")
                parsed.append(
                    ConceptPage(
                        title=_require_text(page, "title", where),
                        content=str(page.get("content", "")),
                        visual=str(page.get("visual", "")),
                    )
                )
            concepts[module_id] = tuple(parsed)
        return concepts

    @staticmethod
    def _parse_challenges(raw: Any, module_ids: set[int]) -> List[Challenge]:
        if not isinstance(raw, list):
            raise CatalogConfigError("Catalog must define a 'challenges' list")

        challenges: List[Challenge] = []
        seen: set[str] = set()
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise CatalogConfigError(f"Challenge #{idx} must be a JSON object")
            where = f"Challenge #{idx}"
            challenge_id = _require_text(entry, "id", where)
            if challenge_id in seen:
                raise CatalogConfigError(f"Duplicate challenge id detected: {challenge_id}")
            seen.add(challenge_id)
            module_id = _require_int(entry, "module_id", where, minimum=1)
            if module_id not in module_ids:
                raise CatalogConfigError(f"Challenge {challenge_id} references unknown module {module_id}")
            challenges.append(
                Challenge(
                    id=challenge_id,
                    module_id=module_id,
                    prompt=_require_text(entry, "prompt", where),
                    difficulty=str(entry.get("difficulty", "")).strip(),
                    xp=_require_int(entry, "xp", where),
                )
            )
        return challenges

    @staticmethod
    def _parse_achievements(raw: Any, module_ids: set[int]) -> List[Achievement]:
        if not isinstance(raw, list):
            raise CatalogConfigError("'achievements' must be a list")

        achievements: List[Achievement] = []
        seen: set[str] = set()
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise CatalogConfigError(f"Achievement #{idx} must be a JSON object")
            where = f"Achievement #{idx}"
            achievement_id = _require_text(entry, "id", where)
            if achievement_id in seen:
                raise CatalogConfigError(f"Duplicate achievement id detected: {achievement_id}")
            seen.add(achievement_id)

            predicates = [key for key in ("module_required", "xp_required", "event") if entry.get(key) is not None]
            if len(predicates) != 1:
                raise CatalogConfigError(
                    f"Achievement {achievement_id} must define exactly one of module_required, xp_required, event"
                )

            module_required = None
            xp_required = None
            event = None
            if predicates[0] == "module_required":
                module_required = _require_int(entry, "module_required", where, minimum=1)
                if module_required not in module_ids:
                    raise CatalogConfigError(
                        f"Achievement {achievement_id} references unknown module {module_required}"
                    )
            elif predicates[0] == "xp_required":
                xp_required = _require_int(entry, "xp_required", where, minimum=1)
            else:
                event = _require_text(entry, "event", where)

            achievements.append(
                Achievement(
                    id=achievement_id,
                    title=_require_text(entry, "title", where),
                    description=str(entry.get("description", "")).strip(),
                    icon=str(entry.get("icon", "")).strip(),
                    module_required=module_required,
                    xp_required=xp_required,
                    event=event,
                )
            )
        return achievements

    @staticmethod
    def _parse_drill(raw: Any) -> List[DrillPair]:
        if not isinstance(raw, list) or not all(isinstance(entry, dict) for entry in raw):
            raise CatalogConfigError("'register_drill' must be a list of objects")
        pairs = [
            DrillPair(
                register=_require_text(entry, "register", f"Drill pair #{idx}"),
                role=_require_text(entry, "role", f"Drill pair #{idx}"),
            )
            for idx, entry in enumerate(raw, start=1)
        ]
        if len({pair.register for pair in pairs}) != len(pairs):
            raise CatalogConfigError("Drill registers must be unique")
        if len({pair.role for pair in pairs}) != len(pairs):
            raise CatalogConfigError("Drill roles must be unique")
        return pairs

    # ------------------------------------------------------------------
    @property
    def modules(self) -> List[Module]:
        """Return a shallow copy of the modules in id order."""

        return list(self._modules)

    @property
    def achievements(self) -> List[Achievement]:
        return list(self._achievements)

    @property
    def drill_pairs(self) -> List[DrillPair]:
        return list(self._drill)

    def module_ids(self) -> Sequence[int]:
        return tuple(module.id for module in self._modules)

    def get_module(self, module_id: Any) -> Optional[Module]:
        """Fetch a module definition if it exists."""

        for module in self._modules:
            if module.id == module_id:
                return module
        return None

    def concepts_for(self, module_id: int) -> Tuple[ConceptPage, ...]:
        return self._concepts.get(module_id, ())

    def challenges_for(self, module_id: int) -> List[Challenge]:
        """Return the challenges of ``module_id`` in catalog order."""

        return [challenge for challenge in self._challenges if challenge.module_id == module_id]

    def get_challenge(self, challenge_id: Any) -> Optional[Challenge]:
        for challenge in self._challenges:
            if challenge.id == challenge_id:
                return challenge
        return None

    def achievement_events(self) -> frozenset[str]:
        """Return the manual events referenced by achievement definitions."""

        return frozenset(a.event for a in self._achievements if a.event is not None)


CATALOG = ContentCatalog()
"""Singleton catalog used throughout the application."""
