from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .detector import blocked_on_edges
from .model import Report


class RenderAttribute(NamedTuple):
    key: str
    value: str


AttributeFn = Callable[[str], Sequence[RenderAttribute]]


class Edge(NamedTuple):
    source: str
    target: str
    label: Optional[str] = None


def _quote(identifier: str) -> str:
    escaped = (
        identifier.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "")
        .replace("\n", "\\n")
    )
    if escaped.endswith("\\"):
        # a backslash right before the closing quote would escape it
        escaped += " "
    return f'"{escaped}"'


def _attribute_list(attributes: Iterable[Tuple[str, str]]) -> str:
    return "[" + ", ".join(f"{key}={_quote(value)}" for key, value in attributes) + "]"


class SparseGraph:
    """Directed graph keyed by opaque node names, rendered to Graphviz DOT.

    Nodes and edges keep insertion order so that rendering the same graph
    twice gives byte-identical text. Instances are meant to be built for a
    single render and thrown away.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, List[RenderAttribute]] = {}
        self._edges: List[Edge] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return node in self._nodes

    @property
    def nodes(self) -> List[str]:
        return list(self._nodes)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def add_node(self, node: str) -> None:
        self._nodes.setdefault(node, [])

    def add_edge(self, source: str, target: str, label: Optional[str] = None) -> None:
        self.add_node(source)
        self.add_node(target)
        self._edges.append(Edge(source, target, label))

    def set_attributes(self, node: str, attributes: Iterable[Tuple[str, str]]) -> None:
        self.add_node(node)
        self._nodes[node] = [RenderAttribute(k, v) for k, v in attributes]

    def attributes(self, node: str) -> List[RenderAttribute]:
        return list(self._nodes.get(node, []))

    def isolated_nodes(self) -> List[str]:
        connected = {e.source for e in self._edges} | {e.target for e in self._edges}
        return [n for n in self._nodes if n not in connected]

    @classmethod
    def from_report(
        cls,
        report: Report,
        include_isolated: bool = False,
        attribute_fn: Optional[AttributeFn] = None,
    ) -> "SparseGraph":
        """Blocked-on graph of a report.

        With ``include_isolated`` every thread becomes a node, in report order.
        Otherwise only threads at either end of a blocked-on edge are kept.
        """
        graph = cls()
        edges = blocked_on_edges(report.threads)
        if include_isolated:
            for name in report.thread_names:
                graph.add_node(name)
        else:
            endpoints = {e.source for e in edges} | {e.target for e in edges}
            for name in report.thread_names:
                if name in endpoints:
                    graph.add_node(name)
        for edge in edges:
            graph.add_edge(edge.source, edge.target, str(edge.lock))

        if attribute_fn is not None:
            for node in graph.nodes:
                attributes = attribute_fn(node)
                if attributes:
                    graph.set_attributes(node, attributes)
        return graph

    def render(self, name: str = "G") -> str:
        lines = [f"digraph {name} {{"]
        for node, attributes in self._nodes.items():
            if attributes:
                lines.append(f"  {_quote(node)} {_attribute_list(attributes)};")
            else:
                lines.append(f"  {_quote(node)};")
        for edge in self._edges:
            statement = f"  {_quote(edge.source)} -> {_quote(edge.target)}"
            if edge.label is not None:
                statement += " " + _attribute_list([("label", edge.label)])
            lines.append(statement + ";")
        lines.append("}")
        return "\n".join(lines) + "\n"
