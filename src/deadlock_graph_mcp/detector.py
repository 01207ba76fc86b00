import logging
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, Set, TypeVar

import networkx as nx

from .model import BlockedOnEdge, DeadlockElement, ThreadEntry

logger = logging.getLogger(__name__)

N = TypeVar("N", bound=Hashable)


def blocked_on_edges(threads: Sequence[ThreadEntry]) -> List[BlockedOnEdge]:
    """Edges T -> O for every lock T is trying to enter while O owns it.

    Awaiting-notify relations (``Object.wait()``, parked threads) and locks
    with no owner in the dump produce no edge. A thread inside ``wait()``
    lists the monitor it released as both awaited and locked; such a
    monitor does not count as owned by that thread.
    """
    owners: Dict[str, str] = {}
    for thread in threads:
        released: Set[str] = {a.lock.token for a in thread.awaited}
        for lock in thread.held:
            if lock.token not in released:
                owners.setdefault(lock.token, thread.name)

    edges: List[BlockedOnEdge] = []
    for thread in threads:
        for lock in thread.awaiting_acquire:
            owner = owners.get(lock.token)
            if owner is None or owner == thread.name:
                continue
            edges.append(BlockedOnEdge(source=thread.name, lock=lock, target=owner))
    return edges


def strongly_connected_components(
    nodes: Iterable[N], successors: Callable[[N], Iterable[N]]
) -> List[List[N]]:
    """Strongly connected components of the graph given by `successors`.

    Members of each component keep the order of `nodes`, and components are
    ordered by their first member, so identical input gives identical output.
    """
    graph = nx.DiGraph()
    order: Dict[N, int] = {}
    for node in nodes:
        order.setdefault(node, len(order))
        graph.add_node(node)
    pending = list(order)
    while pending:
        node = pending.pop()
        for child in successors(node):
            if child not in order:
                order[child] = len(order)
                pending.append(child)
            graph.add_edge(node, child)

    components = [
        sorted(scc, key=order.__getitem__) for scc in nx.strongly_connected_components(graph)
    ]
    components.sort(key=lambda component: order[component[0]])
    return components


def find_deadlocks(threads: Sequence[ThreadEntry]) -> List[DeadlockElement]:
    """Blocked-on edges that lie on a cycle, in edge order.

    Never fails: a dump without cycles simply yields an empty list.
    """
    edges = blocked_on_edges(threads)
    if not edges:
        return []

    adjacency: Dict[str, List[str]] = {t.name: [] for t in threads}
    for edge in edges:
        adjacency[edge.source].append(edge.target)

    component_of: Dict[str, int] = {}
    components = strongly_connected_components(adjacency, lambda n: adjacency[n])
    for number, component in enumerate(components):
        if len(component) < 2:
            continue
        logger.info("Deadlock between threads: %s", ", ".join(component))
        for member in component:
            component_of[member] = number

    elements: List[DeadlockElement] = []
    for edge in edges:
        group = component_of.get(edge.source)
        if group is not None and component_of.get(edge.target) == group:
            elements.append(
                DeadlockElement(
                    blocked_thread=edge.source,
                    awaited_lock=edge.lock,
                    owner_thread=edge.target,
                )
            )
    return elements
