"""Type dependency graph: emission order and forward references.

Nodes are declaration ids of an ``InterfaceModel``; an edge ``user -> target``
means the target's definition has to appear before the user's. An edge is
"by reference" when every use crosses a pointer, a nullable reference or a
callback signature. Only those edges can be turned into forward references
to break cycles: the target is then emitted as an opaque handle at that use
site.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import networkx as nx

from .errors import UnbreakableCycle
from .logging import get_logger
from .types import (
    Callback, Declaration, FixedArray, FunctionDecl, InterfaceModel, Named,
    Option, Pointer, ResultLike, TypeRef,
)

logger = get_logger("graph")


@dataclass(frozen=True)
class Ordering:
    """Declarations in emission order plus the downgraded ``(user, target)`` edges"""
    model: InterfaceModel
    order: tuple
    forward: frozenset = frozenset()

    def __iter__(self) -> Iterator[Declaration]:
        return (self.model.declarations[i] for i in self.order)

    def __len__(self) -> int:
        return len(self.order)

    def is_forward(self, user: int, target: int) -> bool:
        return (user, target) in self.forward

    def forward_targets(self, user: int) -> List[int]:
        return sorted(t for u, t in self.forward if u == user)


def _uses(ty: TypeRef, by_reference: bool = False) -> Iterator[Tuple[int, bool]]:
    if isinstance(ty, Named):
        yield ty.decl_id, by_reference
    elif isinstance(ty, Pointer):
        yield from _uses(ty.target, True)
    elif isinstance(ty, Option):
        yield from _uses(ty.inner, by_reference)
    elif isinstance(ty, FixedArray):
        yield from _uses(ty.element, by_reference)
    elif isinstance(ty, ResultLike):
        yield from _uses(ty.ok, by_reference)
        yield from _uses(ty.err, by_reference)
    elif isinstance(ty, Callback):
        for p in ty.params:
            yield from _uses(p, True)
        yield from _uses(ty.returns, True)


class DependencyGraph:
    """Definition-before-use edges between the declarations of one model.

    ``graph`` is a ``networkx.DiGraph`` over declaration ids whose edges carry
    a ``by_reference`` attribute.
    """

    def __init__(self, model: InterfaceModel):
        self.model = model
        self.graph = nx.DiGraph()
        self.graph.add_nodes_from(range(len(model)))
        for decl in model:
            targets: Dict[int, bool] = {}
            for ty in decl.types():
                for target, by_reference in _uses(ty):
                    targets[target] = targets.get(target, True) and by_reference
            # Sorted insertion keeps every traversal in source order
            for target in sorted(targets):
                self.graph.add_edge(decl.index, target, by_reference=targets[target])

    def dependents(self, target: int) -> int:
        return self.graph.in_degree(target)

    def order(self) -> Ordering:
        graph = self.graph.copy()
        forward = set()
        while (cycle := self._find_cycle(graph)) is not None:
            members = {u for u, _ in cycle}
            names = tuple(self.model.declarations[u].name for u, _ in cycle)
            names += (names[0],)
            if any(isinstance(self.model.declarations[m], FunctionDecl) for m in members):
                raise UnbreakableCycle(names)
            candidates = [(u, t) for u, t in cycle if graph.edges[u, t]["by_reference"]]
            if not candidates:
                raise UnbreakableCycle(names)
            # Fewest dependents first, then the target declared last
            user, target = min(candidates, key=lambda e: (self.dependents(e[1]), -e[1], e[0]))
            logger.debug(
                "forward reference: %s -> %s",
                self.model.declarations[user].name, self.model.declarations[target].name,
            )
            graph.remove_edge(user, target)
            forward.add((user, target))

        order = tuple(nx.dfs_postorder_nodes(graph))
        return Ordering(self.model, order, frozenset(forward))

    def _find_cycle(self, graph: nx.DiGraph) -> Optional[List[Tuple[int, int]]]:
        """Return the edges of the first cycle met in source order, if any"""
        try:
            return [(u, t) for u, t in nx.find_cycle(graph, source=list(graph.nodes))]
        except nx.NetworkXNoCycle:
            return None


def order_model(model: InterfaceModel) -> Ordering:
    """Compute the emission order of ``model``, breaking cycles with forward references"""
    return DependencyGraph(model).order()
