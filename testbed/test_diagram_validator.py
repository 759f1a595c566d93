import pytest

pytest.importorskip("networkx")

from src.uml_studio.diagram_validator import DiagramValidator
from src.uml_studio.normalizer import normalize


def test_empty_code_is_an_error():
    report = DiagramValidator().validate("activity", "```mermaid\n```")

    assert report.valid is False
    assert [item.rule_id for item in report.errors] == ["empty_code"]


def test_header_mismatch_is_an_error():
    report = DiagramValidator().validate("usecase", "flowchart TD\nuser[User] --> login(Log in)")

    assert report.valid is False
    assert any(item.rule_id == "header_mismatch" for item in report.errors)


def test_anonymous_nodes_are_warnings():
    report = DiagramValidator().validate("activity", "flowchart TD\n[Measure] --> b")

    assert report.valid is True
    assert any(item.rule_id == "anonymous_node" and item.target == "[Measure]" for item in report.warnings)


def test_undeclared_terminal_and_unreachable_nodes():
    report = DiagramValidator().validate(
        "activity",
        "flowchart TD\nstartNode((Start)) --> a[A]\na --> endNode\nb[B] --> c[C]",
    )

    rule_ids = {item.rule_id for item in report.warnings}
    assert "undeclared_terminal" in rule_ids
    unreachable = [item for item in report.warnings if item.rule_id == "unreachable_node"]
    assert unreachable and unreachable[0].target == "b,c"


def test_normalized_activity_diagram_is_clean():
    code = normalize(
        "activityDiagram\n"
        "start((Start)) --> [Measure temperature]\n"
        "[Measure temperature] --> {Too hot?}\n"
        "{Too hot?} --|Yes|--> [Cool down]\n"
        "{Too hot?} --|No| end\n"
        "[Cool down] --> end",
        "activity",
    )
    report = DiagramValidator().validate("activity", code)

    assert report.valid is True
    assert report.warnings == []
    assert report.short_reason() == "ok"


def test_sequence_diagrams_skip_flowchart_rules():
    report = DiagramValidator().validate("sequence", "sequenceDiagram\nUser->>System: [request]")

    assert report.findings == []
