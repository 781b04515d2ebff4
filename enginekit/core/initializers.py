"""Named boot steps and their ordering.

An initializer may name another initializer it must run `after` or
`before`. Names are not unique across owners (every engine has its own
`load_config_initializers`), so a constraint applies to every initializer
carrying the referenced name.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from .validation import validate_initializer_name


logger = logging.getLogger(__name__)


class InitializerOrderError(RuntimeError):
    """Initializer constraints cannot be satisfied; the application must not start."""


@dataclass
class Initializer:
    name: str
    block: Callable[[Any, Any], Any]
    owner: Any = None
    before: Optional[str] = None
    after: Optional[str] = None

    def __post_init__(self) -> None:
        validate_initializer_name(self.name)

    @property
    def owner_name(self) -> str:
        return getattr(self.owner, "engine_name", repr(self.owner))

    def run(self, app: Any) -> None:
        logger.debug(f"Running initializer {self.owner_name}.{self.name}")
        self.block(self.owner, app)

    def __repr__(self) -> str:
        return f"<Initializer {self.owner_name}.{self.name}>"


def declare(
    initializers: List[Initializer],
    name: str,
    block: Callable[[Any, Any], Any],
    owner: Any = None,
    before: Optional[str] = None,
    after: Optional[str] = None,
) -> Initializer:
    """Append an initializer, chaining it after the owner's previous one."""
    if any(i.name == name for i in initializers):
        raise InitializerOrderError(f"Initializer {name!r} is already declared by {getattr(owner, 'engine_name', owner)!r}")
    if after is None and initializers and not any(i.name == before for i in initializers):
        after = initializers[-1].name
    initializer = Initializer(name=name, block=block, owner=owner, before=before, after=after)
    initializers.append(initializer)
    return initializer


class InitializerCollection(list):
    """List of initializers that can be put in dependency order."""

    def __init__(self, initializers: Iterable[Initializer] = ()):
        super().__init__(initializers)

    def _prerequisites(self, node: Initializer) -> List[Initializer]:
        return [
            other for other in self
            if other is not node and (other.name == node.after or (other.before is not None and other.before == node.name))
        ]

    def _check_references(self) -> None:
        names = {i.name for i in self}
        for initializer in self:
            for anchor in (initializer.after, initializer.before):
                if anchor is not None and anchor not in names:
                    raise InitializerOrderError(f"{initializer!r} refers to unknown initializer {anchor!r}")

    def tsort(self) -> List[Initializer]:
        """Depth-first topological sort; declaration order breaks ties."""
        self._check_references()
        ordered: List[Initializer] = []
        state: Dict[int, str] = {}

        def visit(node: Initializer, path: List[Initializer]) -> None:
            key = id(node)
            if state.get(key) == "done":
                return
            if state.get(key) == "visiting":
                cycle = path[path.index(node):] + [node]
                raise InitializerOrderError("Initializer cycle: " + " -> ".join(repr(i) for i in cycle))
            state[key] = "visiting"
            for prerequisite in self._prerequisites(node):
                visit(prerequisite, path + [node])
            state[key] = "done"
            ordered.append(node)

        for initializer in self:
            visit(initializer, [])
        return ordered

    def names(self) -> List[str]:
        return [i.name for i in self.tsort()]

    def run_all(self, app: Any) -> None:
        for initializer in self.tsort():
            initializer.run(app)
