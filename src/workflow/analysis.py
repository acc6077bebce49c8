"""Graph-level measures of an n8n workflow: complexity score and cycles."""

from typing import Any

from src.workflow.nodes import get_nodes, iter_edges

MAX_COMPLEXITY = 100

# (type substrings, points per matching node)
_NODE_WEIGHTS: list[tuple[tuple[str, ...], int]] = [
    (("if", "switch", "router"), 10),
    (("loop", "splitInBatches"), 15),
    (("code", "function"), 8),
]


def assess_complexity(workflow: dict[str, Any]) -> int:
    """Score 0-100: 5 per node, extra for branching, looping and code nodes, 2 per edge."""
    nodes = get_nodes(workflow)
    score = len(nodes) * 5
    for node in nodes:
        node_type = node.get("type")
        if not isinstance(node_type, str):
            continue
        # the last segment only, so "n8n-nodes-base" never matches "if"
        short = node_type.rsplit(".", 1)[-1]
        for needles, points in _NODE_WEIGHTS:
            if any(n in short for n in needles):
                score += points
    score += 2 * sum(1 for _ in iter_edges(workflow.get("connections")))
    return min(MAX_COMPLEXITY, score)


def find_cycle(workflow: dict[str, Any]) -> list[str] | None:
    """The first cycle in the connection graph as a node-name path, or None.

    The path starts and ends on the same node: ``["A", "B", "A"]``.
    """
    graph: dict[str, list[str]] = {}
    for node in get_nodes(workflow):
        name = node.get("name")
        if isinstance(name, str):
            graph.setdefault(name, [])
    for source, edge in iter_edges(workflow.get("connections")):
        target = edge.get("node")
        if source in graph and target in graph:
            graph[source].append(target)

    visited: set[str] = set()
    for start in graph:
        if start in visited:
            continue
        # iterative DFS; each frame is (node, iterator over its successors)
        path = [start]
        on_path = {start}
        stack = [(start, iter(graph[start]))]
        visited.add(start)
        while stack:
            node, successors = stack[-1]
            for successor in successors:
                if successor in on_path:
                    return [*path[path.index(successor) :], successor]
                if successor not in visited:
                    visited.add(successor)
                    on_path.add(successor)
                    path.append(successor)
                    stack.append((successor, iter(graph[successor])))
                    break
            else:
                stack.pop()
                on_path.discard(path.pop())
    return None
