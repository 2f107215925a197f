from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .base import Ruleset
from .tormenta20 import Tormenta20Ruleset


class RulesetRegistry:
    """Explicit ruleset map built at startup and passed to whoever needs it.

    ``get`` never fails: a missing or unknown id resolves to the default.
    """

    def __init__(self, default: Ruleset) -> None:
        self._default = default
        self._items: Dict[str, Ruleset] = {default.id: default}

    @property
    def default(self) -> Ruleset:
        return self._default

    def register(self, ruleset: Ruleset) -> None:
        self._items[ruleset.id] = ruleset

    def get(self, ruleset_id: Optional[str] = None) -> Ruleset:
        if ruleset_id and ruleset_id in self._items:
            return self._items[ruleset_id]
        return self._default

    def ids(self) -> List[str]:
        return sorted(self._items)


def build_registry(
    default_id: str = "tormenta20", extra: Iterable[Ruleset] = ()
) -> RulesetRegistry:
    available = {r.id: r for r in (Tormenta20Ruleset(), *extra)}
    registry = RulesetRegistry(available.get(default_id, available["tormenta20"]))
    for ruleset in available.values():
        registry.register(ruleset)
    return registry
