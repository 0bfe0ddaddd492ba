from typing import Dict, List, Optional, Sequence

from catalog import DrillPair


class RegisterDrill:
    """Match register names to their roles.

    A click either selects an item, deselects the selected one, or places the
    selected role onto the clicked register. The drill is done once every
    register holds its own role.
    """

    def __init__(self, pairs: Sequence[DrillPair]):
        self.pairs: List[DrillPair] = list(pairs)
        self._registers = {pair.register for pair in self.pairs}
        self._roles = {pair.role for pair in self.pairs}
        self.reset()

    def reset(self) -> None:
        self.selected: Optional[str] = None
        self.placed: Dict[str, str] = {}
        self.done = False

    def click(self, item: str) -> None:
        if self.done:
            return
        if self.selected == item:
            self.selected = None
            return
        if self.selected in self._roles and item in self._registers:
            self.placed[item] = self.selected
            self.selected = None
            self.done = all(self.placed.get(p.register) == p.role for p in self.pairs)
            return
        self.selected = item

    def is_correct(self, register: str) -> bool:
        return any(p.register == register and self.placed.get(register) == p.role for p in self.pairs)

    def snapshot(self) -> dict:
        return {
            "selected": self.selected,
            "placed": dict(self.placed),
            "correct": [p.register for p in self.pairs if self.is_correct(p.register)],
            "done": self.done,
        }
