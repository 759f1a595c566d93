import re
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .normalizer import header_line_index

NodeRef = Dict[str, str]

# open token, close token, shape name; longest openers first
SHAPE_TOKENS: List[Tuple[str, str, str]] = [
    ("(((", ")))", "double_circle"),
    ("((", "))", "circle"),
    ("([", "])", "stadium"),
    ("[[", "]]", "subroutine"),
    ("[(", ")]", "database"),
    ("{{", "}}", "hexagon"),
    ("[", "]", "rect"),
    ("{", "}", "diamond"),
    ("(", ")", "round"),
    (">", "]", "asymmetric"),
]

NON_GRAPH_PREFIXES = ("%%", "classdef", "class ", "style ", "linkstyle", "click ", "subgraph", "direction ")

_SHAPE_PATTERN = "|".join(
    re.escape(open_) + r".*?" + re.escape(close) for open_, close, _ in SHAPE_TOKENS
)
NODE_RE = re.compile(
    r"[ \t]*(?P<id>[A-Za-z0-9_]+)(?P<shape>" + _SHAPE_PATTERN + r")?(?::::(?P<klass>[\w-]+))?[ \t]*"
)
LINK_RE = re.compile(
    r"[ \t]*<?(?:-->|-\.->|\.\.->|==>|---|-\.-|===)(?:\|(?P<label>[^|\n]*)\|)?[ \t]*"
)
AMP_RE = re.compile(r"[ \t]*&[ \t]*")


def parse_flowchart(code: str) -> nx.DiGraph:
    """Build a directed graph from flowchart source that already has node ids.

    Label-only shapes and lines the parser does not understand are skipped;
    ``normalize`` output parses completely.
    """
    graph = nx.DiGraph()
    lines = str(code or "").split("\n")
    header_index = header_line_index(code)
    for index, raw in enumerate(lines):
        line = raw.strip().rstrip(";")
        if index == header_index or not line or line == "end":
            continue
        if line.lower().startswith(NON_GRAPH_PREFIXES):
            continue
        chain = _parse_chain(line)
        if chain is None:
            continue
        for refs, _ in chain:
            for ref in refs:
                _add_node(graph, ref)
        for (sources, label), (targets, _) in zip(chain, chain[1:]):
            for source in sources:
                for target in targets:
                    graph.add_edge(source["id"], target["id"], label=label)
    return graph


def unreachable_nodes(graph: nx.DiGraph, root: str) -> List[str]:
    if root not in graph:
        return []
    reachable = nx.descendants(graph, root) | {root}
    return [node_id for node_id in graph.nodes if node_id not in reachable]


def _parse_chain(line: str) -> Optional[List[Tuple[List[NodeRef], str]]]:
    chain: List[Tuple[List[NodeRef], str]] = []
    refs: List[NodeRef] = []
    pos = 0
    while pos < len(line):
        node = NODE_RE.match(line, pos)
        if not node or node.end() == pos:
            return None
        refs.append(_node_ref(node))
        pos = node.end()
        amp = AMP_RE.match(line, pos)
        if amp:
            pos = amp.end()
            continue
        link = LINK_RE.match(line, pos)
        if link:
            chain.append((refs, (link.group("label") or "").strip()))
            refs = []
            pos = link.end()
            continue
        if pos < len(line):
            return None
    if refs:
        chain.append((refs, ""))
    return chain or None


def _node_ref(match: "re.Match[str]") -> NodeRef:
    node_id = match.group("id")
    shape_text = match.group("shape") or ""
    ref = {"id": node_id, "label": "", "shape": "", "klass": match.group("klass") or ""}
    for open_, close, name in SHAPE_TOKENS:
        if shape_text.startswith(open_) and shape_text.endswith(close):
            ref["label"] = shape_text[len(open_) : len(shape_text) - len(close)].strip()
            ref["shape"] = name
            break
    return ref


def _add_node(graph: nx.DiGraph, ref: NodeRef) -> None:
    node_id = ref["id"]
    if node_id not in graph:
        graph.add_node(node_id, label=node_id, shape="rect", declared=False, classes=[])
    attrs = graph.nodes[node_id]
    if ref["shape"]:
        attrs["label"] = ref["label"] or node_id
        attrs["shape"] = ref["shape"]
        attrs["declared"] = True
    if ref["klass"] and ref["klass"] not in attrs["classes"]:
        attrs["classes"].append(ref["klass"])
