import logging
import re
from typing import Callable, List, Optional, Tuple

from .diagram_kinds import FLOW_DIRECTIONS, normalize_kind
from .identifiers import IdentifierTable, slugify

logger = logging.getLogger(__name__)

START_ALIAS = "startNode"
END_ALIAS = "endNode"
DECISION_PREFIX = "q_"
TERMINAL_CLASS = "startend"
STYLE_CLASSES = ("startend", "step", "decision", "bar")

DEFAULT_CLASS_DEFS = (
    "classDef startend fill:#fff,stroke:#888,stroke-width:1px,color:#111;\n"
    "classDef bar stroke:#333,stroke-width:4px;\n"
    "classDef step fill:#eef,stroke:#99f,color:#001;\n"
    "classDef decision fill:#ffd,stroke:#cc4,color:#221;"
)

# Slugs that would land on a Mermaid keyword get a suffix instead.
RESERVED_IDS = {
    "start",
    "end",
    "graph",
    "flowchart",
    "subgraph",
    "class",
    "classdef",
    "style",
    "linkstyle",
    "click",
    "default",
}

ARROW = r"(?:-->|-\.->|\.\.->|==>)"
EDGE_LABEL = r"\|[^|\n]*\|"

_HEADER_SKIP_PREFIXES = ("%%", "```", "<!--")
_ALLOCATION_SKIP_PREFIXES = ("%%", "subgraph", "classdef", "class ", "style ", "linkstyle", "click ")

_FENCE_RE = re.compile(r"^```(?:[\w+-]*[ \t]*\n|[ \t]*)(.*?)\s*```$", re.DOTALL)
_FAKE_HEADER_RE = re.compile(
    r"^(use[ _-]?case|activity)(?:[ _-]?diagram)?(?:\s+(?:TD|TB|LR|RL|BT))?\s*$",
    re.IGNORECASE,
)
_FLOW_HEADER_RE = re.compile(r"^(?:flowchart|graph)\s+(?:TD|TB|LR|RL|BT)\b", re.IGNORECASE)
_OTHER_HEADER_RE = re.compile(
    r"^(?:sequenceDiagram|classDiagram|stateDiagram(?:-v2)?|erDiagram|gantt|pie|journey"
    r"|mindmap|timeline|gitGraph|requirementDiagram|quadrantChart|C4\w+)\b"
)
_STEREOTYPE_RE = re.compile(r"<<\s*(actor|include|extend)\s*>>", re.IGNORECASE)

# where a node reference may start: line start, after "&", after a link
# (a malformed "--|label|" link included, it is only repaired later)
_LINK_PREFIX = r"(?:" + ARROW + r"(?:" + EDGE_LABEL + r")?|--" + EDGE_LABEL + r"(?:-->)?)"
_NODE_POSITION = r"(^[ \t]*|&[ \t]*|" + _LINK_PREFIX + r"[ \t]*)"
_NODE_FOLLOW = r"(?=[ \t]*(?:$|[&;]|:::|" + ARROW + r"|---|--[ |]|-\.))"

_RESERVED_DECL_RE = re.compile(_NODE_POSITION + r"(start|end)(?=[\[({])", re.IGNORECASE | re.MULTILINE)
_RESERVED_TARGET_RE = re.compile(
    r"(" + _LINK_PREFIX + r"[ \t]*|&[ \t]*)(start|end)\b" + _NODE_FOLLOW,
    re.IGNORECASE | re.MULTILINE,
)
_RESERVED_SOURCE_RE = re.compile(
    r"(^[ \t]*)(start|end)\b(?=[ \t]*(?:" + ARROW + r"|---|--[ |]|-\.|&))",
    re.IGNORECASE | re.MULTILINE,
)

_BRANCH_ARROW_RE = re.compile(r"(?<![-<.=])--\|([^|\n]+)\|[ \t]*-->")
_BRANCH_LABEL_RE = re.compile(r"(?<![-<.=])--\|([^|\n]+)\|(?![ \t]*-->)")

_IDENTIFIED_NODE = r"(?<![A-Za-z0-9_])[A-Za-z0-9_]+(?:\[[^\n]*?\]|\([^\n]*?\)|\{[^\n]*?\}|>[^\n]*?\])"
_IDENTIFIED_NODE_RE = re.compile(r"(?<![A-Za-z0-9_])([A-Za-z0-9_]+)(?=[\[({>])")
_EDGE_ENDPOINT_RE = re.compile(
    ARROW + r"(?:" + EDGE_LABEL + r")?[ \t]*([A-Za-z_]\w*)\b|\b([A-Za-z_]\w*)[ \t]*" + ARROW
)
_NOT_AFTER_ID = r"(?<![A-Za-z0-9_\[({])"
_CLASS_SUFFIX = r"(?P<klass>:::[\w-]+)?"

# shape tag, open, close, label-only pattern, span left untouched by other passes
SHAPES: List[Tuple[str, str, str, str, str]] = [
    ("[]", "[", "]", r"\[(?P<label>[^\[\]\n]+?)\]", r"\[[^\n]*?\]"),
    ("(())", "((", "))", r"\(\((?P<label>[^()\n]+?)\)\)", r"\(\([^\n]*?\)\)"),
    ("{}", "{", "}", r"\{(?P<label>[^{}\n]+?)\}", r"\{[^\n]*?\}"),
]

_CLASS_USE_RE = re.compile(r":::(?:" + "|".join(STYLE_CLASSES) + r")\b")
_CLASS_DEF_RE = re.compile(r"^[ \t]*classDef\s+", re.MULTILINE)


def strip_fence(text: str) -> str:
    stripped = str(text or "").strip()
    match = _FENCE_RE.match(stripped)
    if not match:
        return stripped
    return match.group(1).strip()


def header_line_index(text: str) -> int:
    for index, raw in enumerate(str(text or "").split("\n")):
        line = raw.strip()
        if not line or line.startswith(_HEADER_SKIP_PREFIXES):
            continue
        return index
    return -1


def header_line(text: str) -> str:
    index = header_line_index(text)
    if index < 0:
        return ""
    return text.split("\n")[index].strip()


def correct_header(text: str, kind: str = "") -> str:
    index = header_line_index(text)
    if index < 0:
        return text
    lines = text.split("\n")
    match = _FAKE_HEADER_RE.match(lines[index].strip())
    if not match:
        return text
    token_kind = "usecase" if match.group(1).lower().startswith("use") else "activity"
    direction = FLOW_DIRECTIONS.get(normalize_kind(kind)) or FLOW_DIRECTIONS[token_kind]
    lines[index] = f"flowchart {direction}"
    return "\n".join(lines)


def normalize_stereotypes(text: str) -> str:
    return _STEREOTYPE_RE.sub(lambda m: f"«{m.group(1).lower()}»", text)


def rewrite_reserved_identifiers(text: str) -> str:
    text = _RESERVED_DECL_RE.sub(lambda m: m.group(1) + _alias_for(m.group(2)), text)
    text = _RESERVED_TARGET_RE.sub(lambda m: m.group(1) + _alias_for(m.group(2)), text)
    return _RESERVED_SOURCE_RE.sub(lambda m: m.group(1) + _alias_for(m.group(2)), text)


def correct_branch_labels(text: str) -> str:
    text = _BRANCH_ARROW_RE.sub(r"-->|\1|", text)
    return _BRANCH_LABEL_RE.sub(r"-->|\1|", text)


def allocate_anonymous_ids(text: str, table: Optional[IdentifierTable] = None) -> str:
    """Give every label-only ``[..]``, ``((..))`` and ``{..}`` node an identifier.

    Shapes are handled one pass each, rectangular first, then circular, then
    diamond. Identical shape+label pairs share one identifier, so a node the
    generator repeats by label stays a single node in the graph.
    """
    if table is None:
        table = IdentifierTable(_existing_ids(text))
    lines = text.split("\n")
    for tag, open_, close, anonymous, _ in SHAPES:
        pattern = _allocation_pattern(tag, anonymous)

        def rewrite(match: "re.Match[str]", tag: str = tag, open_: str = open_, close: str = close) -> str:
            if match.group("keep") is not None:
                return match.group(0)
            label = match.group("label").strip()
            if not label:
                return match.group(0)
            node_id = _resolve_node_id(table, tag, label)
            return f"{node_id}{open_}{label}{close}{match.group('klass') or ''}"

        lines = [line if _skip_allocation(line) else pattern.sub(rewrite, line) for line in lines]
    return "\n".join(lines)


def ensure_terminal_declarations(text: str) -> str:
    index = header_line_index(text)
    if index < 0:
        return text
    lines = text.split("\n")
    if not _FLOW_HEADER_RE.match(lines[index].strip()):
        return text
    injected = [
        f"{alias}(({label})):::{TERMINAL_CLASS}"
        for alias, label in ((START_ALIAS, "Start"), (END_ALIAS, "End"))
        if _references(text, alias) and not _declares(text, alias)
    ]
    if not injected:
        return text
    return "\n".join(lines[: index + 1] + injected + lines[index + 1 :])


def inject_class_defs(text: str) -> str:
    if not _CLASS_USE_RE.search(text) or _CLASS_DEF_RE.search(text):
        return text
    return f"{text.rstrip()}\n\n{DEFAULT_CLASS_DEFS}"


def is_flow_dialect(text: str, kind: str = "") -> bool:
    if normalize_kind(kind) in {"sequence", "class"}:
        return False
    return not _OTHER_HEADER_RE.match(header_line(text))


FLOW_STAGES: List[Tuple[str, Callable[[str], str]]] = [
    ("reserved_identifiers", rewrite_reserved_identifiers),
    ("branch_labels", correct_branch_labels),
    ("anonymous_ids", allocate_anonymous_ids),
    ("terminal_declarations", ensure_terminal_declarations),
    ("class_defs", inject_class_defs),
]


def normalize(raw_text: str, kind: str = "") -> str:
    """Rewrite LLM-produced Mermaid into source the renderer accepts.

    Never raises; text that matches no rewrite rule comes back unchanged
    (apart from fence removal and trimming). Running it twice gives the same
    result as running it once.
    """
    text = _strip_all_fences(str(raw_text or "").replace("\r\n", "\n"))
    stages: List[Tuple[str, Callable[[str], str]]] = [
        ("header", lambda value: correct_header(value, kind)),
        ("stereotypes", normalize_stereotypes),
    ]
    for name, stage in stages:
        text = _run_stage(name, stage, text)
    if not is_flow_dialect(text, kind):
        return text
    for name, stage in FLOW_STAGES:
        text = _run_stage(name, stage, text)
    return text


def _run_stage(name: str, stage: Callable[[str], str], text: str) -> str:
    updated = stage(text)
    if updated != text:
        logger.debug("normalize stage %s rewrote text", name)
    return updated


def _strip_all_fences(text: str) -> str:
    current = strip_fence(text)
    while True:
        stripped = strip_fence(current)
        if stripped == current:
            return current
        current = stripped


def _alias_for(word: str) -> str:
    return START_ALIAS if word.lower() == "start" else END_ALIAS


def _skip_allocation(line: str) -> bool:
    return line.strip().lower().startswith(_ALLOCATION_SKIP_PREFIXES)


def _allocation_pattern(tag: str, anonymous: str) -> "re.Pattern[str]":
    # identified nodes, edge labels and the other shapes are consumed whole so
    # that brackets inside their text are never allocated
    kept = [_IDENTIFIED_NODE, EDGE_LABEL] + [span for other, _, _, _, span in SHAPES if other != tag]
    return re.compile(r"(?P<keep>" + "|".join(kept) + r")|" + _NOT_AFTER_ID + anonymous + _CLASS_SUFFIX)


def _resolve_node_id(table: IdentifierTable, tag: str, label: str) -> str:
    key = f"{tag}:{label}"
    existing = table.lookup(key)
    if existing is not None:
        return existing
    if tag == "(())":
        lowered = label.lower()
        if "end" in lowered:
            return table.resolve(key, END_ALIAS)
        if "start" in lowered:
            return table.resolve(key, START_ALIAS)
    base = table.slug_or_placeholder(label)
    if base in RESERVED_IDS:
        base = f"{base}_node"
    if tag == "{}":
        base = f"{DECISION_PREFIX}{base}"
    return table.resolve(key, base)


def _existing_ids(text: str) -> List[str]:
    found: List[str] = []
    for line in text.split("\n"):
        if _skip_allocation(line):
            continue
        found.extend(_IDENTIFIED_NODE_RE.findall(line))
        for target, source in _EDGE_ENDPOINT_RE.findall(line):
            found.append(target or source)
    return [node_id for node_id in found if node_id not in {START_ALIAS, END_ALIAS}]


def _references(text: str, alias: str) -> bool:
    pattern = (
        r"(?:" + ARROW + r"(?:" + EDGE_LABEL + r")?|&)[ \t]*" + alias + r"\b"
        r"|\b" + alias + r"\b(?:\(\([^\n]*?\)\))?(?::::[\w-]+)?[ \t]*(?:" + ARROW + r"|---|--[ |]|&)"
    )
    return re.search(pattern, text) is not None


def _declares(text: str, alias: str) -> bool:
    return re.search(r"^[ \t]*" + alias + r"\(\(", text, re.MULTILINE) is not None


__all__ = [
    "DEFAULT_CLASS_DEFS",
    "END_ALIAS",
    "START_ALIAS",
    "allocate_anonymous_ids",
    "correct_branch_labels",
    "correct_header",
    "ensure_terminal_declarations",
    "header_line",
    "header_line_index",
    "inject_class_defs",
    "is_flow_dialect",
    "normalize",
    "normalize_stereotypes",
    "rewrite_reserved_identifiers",
    "slugify",
    "strip_fence",
]
