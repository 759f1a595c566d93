import re
from dataclasses import dataclass, field
from typing import List

from .flow_graph import parse_flowchart, unreachable_nodes
from .header_validator import validate_header
from .normalizer import END_ALIAS, START_ALIAS, header_line_index, is_flow_dialect, strip_fence

ANONYMOUS_NODE_RE = re.compile(r"(?:^|[\s>|&])(\[[^\[\]\n]+\]|\(\([^()\n]+\)\)|\{[^{}\n]+\})")


@dataclass(frozen=True)
class ValidationFinding:
    severity: str
    rule_id: str
    message: str
    target: str = ""


@dataclass
class ValidationReport:
    kind: str
    findings: List[ValidationFinding] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationFinding]:
        return [item for item in self.findings if item.severity == "error"]

    @property
    def warnings(self) -> List[ValidationFinding]:
        return [item for item in self.findings if item.severity == "warning"]

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    def short_reason(self) -> str:
        if self.valid and not self.warnings:
            return "ok"
        if not self.valid:
            return "; ".join(item.message for item in self.errors[:3])
        return "; ".join(item.message for item in self.warnings[:2])


class DiagramValidator:
    """Checks normalized Mermaid before it is previewed or stored.

    Header problems are errors; structural problems of flowcharts are
    warnings, because the renderer still accepts the text.
    """

    def validate(self, kind: str, code: str) -> ValidationReport:
        report = ValidationReport(kind=kind)
        stripped = strip_fence(code)
        if not stripped:
            report.findings.append(ValidationFinding("error", "empty_code", "Mermaid code is empty."))
            return report

        header = validate_header(stripped, kind)
        if not header.valid:
            report.findings.append(ValidationFinding("error", header.rule_id, header.message, target=header.line))

        if is_flow_dialect(stripped, kind):
            report.findings.extend(self._validate_flowchart(stripped))
        return report

    def _validate_flowchart(self, code: str) -> List[ValidationFinding]:
        findings: List[ValidationFinding] = []
        header_index = header_line_index(code)
        for index, line in enumerate(code.split("\n")):
            if index == header_index or line.strip().lower().startswith(("subgraph", "%%")):
                continue
            for shape in ANONYMOUS_NODE_RE.findall(line):
                findings.append(
                    ValidationFinding(
                        "warning",
                        "anonymous_node",
                        f"Node '{shape}' has no identifier.",
                        target=shape,
                    )
                )

        graph = parse_flowchart(code)
        for alias in (START_ALIAS, END_ALIAS):
            if alias in graph and not graph.nodes[alias]["declared"]:
                findings.append(
                    ValidationFinding(
                        "warning",
                        "undeclared_terminal",
                        f"Terminal node '{alias}' is referenced but never declared.",
                        target=alias,
                    )
                )

        unreachable = unreachable_nodes(graph, START_ALIAS)
        if unreachable:
            findings.append(
                ValidationFinding(
                    "warning",
                    "unreachable_node",
                    f"Nodes not reachable from {START_ALIAS}: {', '.join(unreachable)}.",
                    target=",".join(unreachable),
                )
            )
        return findings
