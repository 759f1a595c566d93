import re
from dataclasses import dataclass

from .diagram_kinds import KIND_HEADERS, normalize_kind
from .normalizer import strip_fence

VALID_HEADER_RE = re.compile(r"^(?:flowchart\s+(?:TD|LR|TB|BT|RL)|sequenceDiagram|classDiagram)\b")

EXPECTED_HEADER_RES = {
    "usecase": re.compile(r"^flowchart\s+LR\b"),
    "activity": re.compile(r"^flowchart\s+TD\b"),
    "sequence": re.compile(r"^sequenceDiagram\b"),
    "class": re.compile(r"^classDiagram\b"),
}

MISSING_HEADER_MESSAGE = (
    "The first line of the Mermaid code must be a diagram header, e.g. "
    "flowchart TD | flowchart LR | sequenceDiagram | classDiagram. "
    "Use flowchart for usecase and activity diagrams."
)


@dataclass(frozen=True)
class HeaderCheck:
    valid: bool
    message: str = ""
    line: str = ""

    @property
    def rule_id(self) -> str:
        if self.valid:
            return ""
        return "header_mismatch" if VALID_HEADER_RE.match(self.line) else "header_missing"


def first_meaningful_line(code: str) -> str:
    for raw in strip_fence(code).splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith(("%%", "```", "<!--")):
            continue
        return line
    return ""


def is_valid_header_line(line: str) -> bool:
    return VALID_HEADER_RE.match(line or "") is not None


def expected_header(kind: str) -> str:
    return KIND_HEADERS.get(normalize_kind(kind), "")


def validate_header(code: str, expected_kind: str = "") -> HeaderCheck:
    line = first_meaningful_line(code)
    if not is_valid_header_line(line):
        return HeaderCheck(valid=False, message=MISSING_HEADER_MESSAGE, line=line)

    kind = normalize_kind(expected_kind)
    pattern = EXPECTED_HEADER_RES.get(kind)
    if pattern is not None and not pattern.match(line):
        return HeaderCheck(
            valid=False,
            message=(
                f"Header does not match the selected diagram kind '{kind}'. "
                f"Start the first line with '{expected_header(kind)}' (current: '{line or '(empty)'}')."
            ),
            line=line,
        )
    return HeaderCheck(valid=True, line=line)
