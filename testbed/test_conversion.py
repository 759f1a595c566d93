import pytest

from src.uml_studio.conversion import ConversionService
from src.uml_studio.normalizer import DEFAULT_CLASS_DEFS
from src.uml_studio.store import StudioStore


class StubClient:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def is_enabled(self) -> bool:
        return True

    def complete_text(self, system_prompt, user_prompt, temperature=0.2):
        self.calls.append((system_prompt, user_prompt))
        return self.reply


class FailingClient:
    def is_enabled(self) -> bool:
        return True

    def complete_text(self, system_prompt, user_prompt, temperature=0.2):
        raise AssertionError("client must not be called")


def test_requirement_to_mermaid_normalizes_activity_output():
    client = StubClient("```mermaid\nactivityDiagram\n[Measure]-->((End))\n```")
    service = ConversionService(llm_client=client)

    result = service.requirement_to_mermaid("SYS", "SYS-1", "activity", "D-1", title="Measure")

    assert result.mermaid == (
        "flowchart TD\n"
        "endNode((End)):::startend\n"
        "measure[Measure]-->endNode((End))\n"
        "\n" + DEFAULT_CLASS_DEFS
    )
    assert result.linked == {"reqId": "SYS-1"}
    assert result.header.valid is True
    assert "- Requirement ID: SYS-1" in client.calls[0][1]


def test_requirement_to_mermaid_fixes_usecase_header():
    client = StubClient("usecaseDiagram\nuser[<<actor>> User] --> login(Log in)")
    result = ConversionService(llm_client=client).requirement_to_mermaid("SW", "SW-1", "usecase", "D-2")

    assert result.mermaid == "flowchart LR\nuser[«actor» User] --> login(Log in)"
    assert result.header.valid is True


def test_invalid_header_is_reported_not_raised():
    client = StubClient("graph TD\nA-->B")
    result = ConversionService(llm_client=client).requirement_to_mermaid("SW", "SW-1", "sequence", "D-3")

    assert result.mermaid == "graph TD\nA-->B"
    assert result.header.valid is False
    assert result.header.rule_id == "header_missing"


def test_missing_fields_fail_before_calling_the_client():
    service = ConversionService(llm_client=FailingClient())

    with pytest.raises(ValueError, match="reqId is required"):
        service.requirement_to_mermaid("SYS", "", "activity", "D-1")
    with pytest.raises(ValueError, match="swReqId is required"):
        service.code_to_mermaid("CODE-1", "python", "pass", "class", "D-1", "")


def test_code_to_mermaid_links_code_and_requirements():
    client = StubClient("classDiagram\nclass Sensor")
    result = ConversionService(llm_client=client).code_to_mermaid(
        "CODE-1",
        "python",
        "class Sensor: pass",
        "class",
        "D-4",
        "SWT-1",
        req_join={"reqId": "SYS-1"},
    )

    assert result.mermaid == "classDiagram\nclass Sensor"
    assert result.linked == {"codeId": "CODE-1", "swReqId": "SWT-1", "reqId": "SYS-1"}
    assert "class Sensor: pass" in client.calls[0][1]


def test_mermaid_to_code_reads_stored_diagram(tmp_path):
    store = StudioStore(tmp_path)
    store.save_diagram("D-5", "class", "classDiagram\nclass Alarm")
    client = StubClient("class Alarm:\n    pass")

    result = ConversionService(llm_client=client, store=store).mermaid_to_code(
        "class", "python", "SWT-1", diagram_id="D-5"
    )

    assert result.code == "class Alarm:\n    pass"
    assert result.code_id.startswith("CODE-")
    assert result.diagram_id == "D-5"
    assert "classDiagram\nclass Alarm" in client.calls[0][1]


def test_mermaid_to_code_keeps_given_code_id_and_requires_source():
    service = ConversionService(llm_client=StubClient("pass"))

    result = service.mermaid_to_code("class", "python", "SWT-1", mermaid="classDiagram\nclass A", code_id=" CODE-7 ")
    assert result.code_id == "CODE-7"

    with pytest.raises(ValueError, match="mermaid is required"):
        service.mermaid_to_code("class", "python", "SWT-1", diagram_id="missing")
