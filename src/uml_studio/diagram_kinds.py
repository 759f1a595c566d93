from typing import Dict, Tuple

DIAGRAM_KINDS = ["usecase", "activity", "sequence", "class"]

KIND_HEADERS: Dict[str, str] = {
    "usecase": "flowchart LR",
    "activity": "flowchart TD",
    "sequence": "sequenceDiagram",
    "class": "classDiagram",
}

FLOW_DIRECTIONS: Dict[str, str] = {
    "usecase": "LR",
    "activity": "TD",
}

REQUIREMENT_TYPES: Tuple[str, ...] = ("SYS", "SW", "SW_DES", "SW_TEST")

REQUIREMENT_TYPE_LABELS: Dict[str, str] = {
    "SYS": "System requirement",
    "SW": "Software requirement",
    "SW_DES": "Software design requirement",
    "SW_TEST": "Software test requirement",
}


def normalize_kind(kind: str) -> str:
    value = str(kind or "").strip().lower()
    if value in DIAGRAM_KINDS:
        return value
    return ""
