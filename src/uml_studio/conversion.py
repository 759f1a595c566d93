import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .header_validator import HeaderCheck, validate_header
from .llm_client import OpenAITextClient, TextCompletionClient
from .normalizer import normalize, strip_fence
from .prompts import (
    SYSTEM_PROMPT,
    build_code_generation_prompt,
    build_code_prompt,
    build_requirement_prompt,
)
from .store import StudioStore, require_non_empty

logger = logging.getLogger(__name__)


@dataclass
class MermaidConversion:
    mermaid: str
    diagram_id: str
    kind: str
    linked: Dict[str, str] = field(default_factory=dict)
    header: HeaderCheck = field(default_factory=lambda: HeaderCheck(valid=True))


@dataclass
class CodeConversion:
    code_id: str
    language: str
    code: str
    diagram_id: str
    diagram_kind: str


class ConversionService:
    def __init__(
        self,
        llm_client: Optional[TextCompletionClient] = None,
        store: Optional[StudioStore] = None,
    ) -> None:
        self.llm_client = llm_client or OpenAITextClient()
        self.store = store

    def requirement_to_mermaid(
        self,
        req_type: str,
        req_id: str,
        diagram_kind: str,
        diagram_id: str,
        title: str = "",
        desc: str = "",
    ) -> MermaidConversion:
        require_non_empty("reqType", req_type)
        require_non_empty("reqId", req_id)
        require_non_empty("diagramKind", diagram_kind)
        require_non_empty("diagramId", diagram_id)

        prompt = build_requirement_prompt(req_type, req_id, diagram_kind, title=title, desc=desc)
        raw = self._complete(prompt)
        return self._finish(raw, diagram_id, diagram_kind, {"reqId": req_id})

    def code_to_mermaid(
        self,
        code_id: str,
        language: str,
        code: str,
        diagram_kind: str,
        diagram_id: str,
        sw_req_id: str,
        req_join: Optional[Dict[str, Any]] = None,
    ) -> MermaidConversion:
        require_non_empty("codeId", code_id)
        require_non_empty("language", language)
        require_non_empty("code", code)
        require_non_empty("diagramKind", diagram_kind)
        require_non_empty("diagramId", diagram_id)
        require_non_empty("swReqId", sw_req_id)

        prompt = build_code_prompt(language, code, diagram_kind, sw_req_id, req_join=req_join)
        raw = self._complete(prompt)
        linked = {"codeId": code_id, "swReqId": sw_req_id}
        if req_join and req_join.get("reqId"):
            linked["reqId"] = str(req_join["reqId"])
        return self._finish(raw, diagram_id, diagram_kind, linked)

    def mermaid_to_code(
        self,
        diagram_kind: str,
        language: str,
        sw_req_id: str,
        mermaid: str = "",
        diagram_id: str = "",
        code_id: str = "",
    ) -> CodeConversion:
        require_non_empty("diagramKind", diagram_kind)
        require_non_empty("language", language)
        require_non_empty("swReqId", sw_req_id)

        source = mermaid
        if not source and diagram_id and self.store is not None:
            stored = self.store.get_diagram(diagram_id)
            if stored:
                source = stored.get("mermaid", "")
        source = strip_fence(source)
        require_non_empty("mermaid", source)

        prompt = build_code_generation_prompt(diagram_kind, source, language)
        generated = self._complete(prompt)
        new_code_id = code_id.strip() if code_id and code_id.strip() else f"CODE-{int(time.time() * 1000)}"
        logger.info("generated %s code %s from diagram %s", language, new_code_id, diagram_id or "(inline)")
        return CodeConversion(
            code_id=new_code_id,
            language=language,
            code=generated,
            diagram_id=diagram_id,
            diagram_kind=diagram_kind,
        )

    def _complete(self, prompt: str) -> str:
        return self.llm_client.complete_text(SYSTEM_PROMPT, prompt)

    def _finish(self, raw: str, diagram_id: str, kind: str, linked: Dict[str, str]) -> MermaidConversion:
        mermaid = normalize(raw, kind)
        header = validate_header(mermaid, kind)
        if not header.valid:
            logger.warning("diagram %s header check failed: %s", diagram_id, header.message)
        logger.info("converted diagram %s kind=%s lines=%d", diagram_id, kind, len(mermaid.splitlines()))
        return MermaidConversion(
            mermaid=mermaid,
            diagram_id=diagram_id,
            kind=kind,
            linked=linked,
            header=header,
        )
