"""
Mermaid.js rendering of dependency graphs.

Ids made only of word characters are written verbatim. Any other id gets a
sanitized Mermaid id (non-word characters become '_', with '_' appended until
unique) while its label keeps the original text, double quotes escaped as
'#quot;'. Edge types are quoted under the same rule.
"""
import re
from typing import TYPE_CHECKING, Dict, Iterable

if TYPE_CHECKING:
    from depgraph.dependency.graph import DependencyGraph

HEADER = "graph TD;"
INDENT = "  "

_PLAIN = re.compile(r"^[A-Za-z0-9_]+$")
_NON_WORD = re.compile(r"[^A-Za-z0-9_]")


def escape_label(text: str) -> str:
    return text.replace('"', "#quot;")


def mermaid_ids(node_ids: Iterable[str]) -> Dict[str, str]:
    """Map each node id to a unique id that Mermaid accepts."""
    node_ids = list(node_ids)
    used = {node_id for node_id in node_ids if _PLAIN.match(node_id)}
    mapping = {}
    for node_id in node_ids:
        if _PLAIN.match(node_id):
            mapping[node_id] = node_id
            continue
        candidate = _NON_WORD.sub("_", node_id) or "_"
        while candidate in used:
            candidate += "_"
        used.add(candidate)
        mapping[node_id] = candidate
    return mapping


def render_edge_label(edge_type: str) -> str:
    if _PLAIN.match(edge_type):
        return edge_type
    return f'"{escape_label(edge_type)}"'


def render_mermaid(graph: "DependencyGraph") -> str:
    """Render nodes then edges as a top-down Mermaid flowchart."""
    ids = mermaid_ids(graph.node_ids())
    lines = [HEADER]

    for node_id in graph.node_ids():
        lines.append(f'{INDENT}{ids[node_id]}["{escape_label(node_id)}"];')

    for edge in graph.iter_edges():
        lines.append(f"{INDENT}{ids[edge.source]} -- {render_edge_label(edge.type)} --> {ids[edge.target]};")

    return "\n".join(lines) + "\n"
