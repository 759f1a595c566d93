from importlib import import_module
from typing import Any

__all__ = [
    "normalize",
    "strip_fence",
    "validate_header",
    "parse_flowchart",
]


def __getattr__(name: str) -> Any:
    if name in {"normalize", "strip_fence"}:
        module = import_module(".normalizer", __name__)
        return getattr(module, name)
    if name == "validate_header":
        module = import_module(".header_validator", __name__)
        return getattr(module, name)
    if name == "parse_flowchart":
        module = import_module(".flow_graph", __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
