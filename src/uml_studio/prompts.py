import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .diagram_kinds import FLOW_DIRECTIONS, normalize_kind

SYSTEM_PROMPT = "You are a conversion engine. Output only the result, never an explanation."

USECASE_GUARD = """
[Important] Mermaid has no 'usecase' diagram token. Always write a flowchart.
[Format] The first line is 'flowchart LR'. No code fences.
[Mapping]
- System boundary: subgraph System [System name] ... end
- Actor: rectangle [] node whose label starts with the guillemet stereotype «actor». Never write <<actor>>.
  e.g. user[«actor» User]:::actor
- Use case: round node. e.g. login(Log in):::usecase
- Links:
  - Actor to use case: --> (plain link)
  - «include»/«extend»: dotted -.-> with an edge label. e.g. A -.->|«include»| B
- Forbidden: the tokens 'usecase' and 'usecaseDiagram'. Flowchart only.
[classDef]
classDef actor fill:#eef,stroke:#99f,stroke-width:1px,color:#003;
classDef usecase fill:#efe,stroke:#6c6,stroke-width:1px,color:#030;
"""

ACTIVITY_GUARD = """
[Important] Mermaid has no 'activity' diagram token. Always write a flowchart.
[Format] The first line is 'flowchart TD'. No code fences.
[Mapping]
- Every node carries an ASCII id (no anonymous nodes)
  - start/end: startNode((Start)), endNode((End))  (reserved words avoided)
  - activity: measure[Measure temperature]  (id[label])
  - decision: overheat{Over threshold?}  (id{label})
  - reuse the same id for the same node
- Branch labels only as `A -->|Yes| B` / `A -->|No| C`
- Reserved words are not ids: start, end, class, subgraph, click, style, linkStyle
- Parallel: fork[||]:::bar / join[||]:::bar
- Use subgraph for swimlanes when needed (e.g. subgraph User [...])
- Forbidden: the tokens 'activity' and 'activityDiagram'.
[Header]
- If the header comes out wrong, correct it to 'flowchart TD'.
[classDef]
classDef startend fill:#fff,stroke:#888,stroke-width:1px,color:#111;
classDef bar stroke:#333,stroke-width:4px;
classDef step fill:#eef,stroke:#99f,color:#001;
classDef decision fill:#ffd,stroke:#cc4,color:#221;
"""

CLASS_GUARD = """
[Important] Mermaid classDiagram rules (assume the code is already written and extract its domain model)
[Header] The first line is 'classDiagram'. No code fences. No flowchart or sequence syntax.
[Structure]
- At least 2 classes (3-8 recommended). Do not merge different responsibilities into one class.
- Nouns become classes (PascalCase, ASCII), key state becomes fields, verbs become methods.
- Signatures such as 'name: string', 'check(t: float): bool'.
- Keep types short: string|int|float|bool|Date|enum. Do not over-guess.
- Visibility (+ # -) only when needed.
[Relations]
- inheritance: A <|-- B   composition: A *-- B   aggregation: A o-- B
- association: A --> B    dependency: A ..> B
- interfaces as 'class IName <<interface>>', realisation as 'C ..|> IName'
- 'namespace Pack { ... }' is allowed.
[Example]
classDiagram
class Sensor { +read(): float }
class ThresholdPolicy { +limit: float; +isOver(t: float): bool }
class AlertService { +notify(msg: string): void }
class Controller { +check(t: float): void }
Sensor --> Controller : provides
Controller ..> ThresholdPolicy : uses
Controller --> AlertService : uses
"""

CLASS_FROM_REQUIREMENT_EXTRA = """
[Requirement to classDiagram]
- No single-class answers. Split the roles, entities, policies and services the requirement implies into 2-8 classes.
- Separate Controller/Service/Model/Policy responsibilities where possible and state their relations.
- Do not invent details; keep types and associations brief."""


@dataclass(frozen=True)
class KindConfig:
    token: str
    direction: str
    guard: str

    @property
    def header(self) -> str:
        if self.token == "flowchart":
            return f"flowchart {self.direction}"
        return self.token


def kind_config(kind: str) -> KindConfig:
    value = normalize_kind(kind)
    if value == "usecase":
        return KindConfig("flowchart", FLOW_DIRECTIONS["usecase"], USECASE_GUARD)
    if value == "activity":
        return KindConfig("flowchart", FLOW_DIRECTIONS["activity"], ACTIVITY_GUARD)
    if value == "sequence":
        return KindConfig("sequenceDiagram", "", "")
    if value == "class":
        return KindConfig("classDiagram", "", CLASS_GUARD)
    return KindConfig("flowchart", "TD", "")


def build_requirement_prompt(
    req_type: str,
    req_id: str,
    diagram_kind: str,
    title: str = "",
    desc: str = "",
) -> str:
    config = kind_config(diagram_kind)
    extra = CLASS_FROM_REQUIREMENT_EXTRA if normalize_kind(diagram_kind) == "class" else ""
    return (
        f"[Goal] Create one Mermaid diagram of the requirement below from the {diagram_kind} viewpoint.\n"
        f"[Format] Use '{config.header}' on the first line.\n"
        f"{config.guard}{extra}\n"
        "[Output] Mermaid code only. No code fences.\n"
        "[Input]\n"
        f"- Requirement type: {req_type}\n"
        f"- Requirement ID: {req_id}\n"
        f"- Title: {title or ''}\n"
        f"- Description: {desc or ''}"
    )


def build_code_prompt(
    language: str,
    code: str,
    diagram_kind: str,
    sw_req_id: str,
    req_join: Optional[Dict[str, Any]] = None,
) -> str:
    config = kind_config(diagram_kind)
    joined = json.dumps(req_join, ensure_ascii=False) if req_join else "none"
    return (
        f"[Goal] Create one Mermaid diagram of the {language} source code below from the {diagram_kind} viewpoint.\n"
        f"[Format] Use '{config.header}' on the first line.\n"
        f"{config.guard}\n"
        "[Output] Mermaid code only. No code fences.\n"
        f"[Reference] Linked SW test requirement ID: {sw_req_id}\n"
        f"[Optional] Matched requirement (reflect it if present): {joined}\n"
        "[Source code]\n"
        f"{code}"
    )


def build_code_generation_prompt(diagram_kind: str, mermaid: str, language: str) -> str:
    return (
        f"\n[Goal] Implement the {diagram_kind} Mermaid diagram below as {language} source code "
        "(minimal skeleton).\n"
        "[Output] Code only.\n"
        "[Mermaid]\n"
        f"{mermaid}\n"
    )
