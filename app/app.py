from pathlib import Path
import sys
import html

import streamlit as st
import streamlit.components.v1 as components

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from src.uml_studio.conversion import ConversionService  # noqa: E402
from src.uml_studio.diagram_kinds import (  # noqa: E402
    DIAGRAM_KINDS,
    REQUIREMENT_TYPE_LABELS,
    REQUIREMENT_TYPES,
)
from src.uml_studio.diagram_validator import DiagramValidator  # noqa: E402
from src.uml_studio.llm_client import OpenAITextClient  # noqa: E402
from src.uml_studio.normalizer import normalize  # noqa: E402
from src.uml_studio.settings import Settings, configure_logging  # noqa: E402
from src.uml_studio.store import StudioStore  # noqa: E402

SETTINGS = Settings.from_env()
configure_logging(SETTINGS.log_level)


@st.cache_resource
def get_store() -> StudioStore:
    data_dir = SETTINGS.data_dir if SETTINGS.data_dir.is_absolute() else ROOT_DIR / SETTINGS.data_dir
    return StudioStore(data_dir)


def get_runtime_llm_client() -> OpenAITextClient:
    key_source = str(st.session_state.get("llm_key_source", "Environment"))
    app_key = str(st.session_state.get("llm_api_key", "")).strip()
    api_key = app_key if key_source == "Input in App" else SETTINGS.openai_api_key
    model = str(st.session_state.get("llm_model", "")).strip() or SETTINGS.model
    return OpenAITextClient(api_key=api_key, model=model, settings=SETTINGS)


def get_conversion_service() -> ConversionService:
    return ConversionService(llm_client=get_runtime_llm_client(), store=get_store())


def ensure_state() -> None:
    if "llm_key_source" not in st.session_state:
        st.session_state.llm_key_source = "Environment"
    if "llm_api_key" not in st.session_state:
        st.session_state.llm_api_key = ""
    if "llm_model" not in st.session_state:
        st.session_state.llm_model = SETTINGS.model
    if "last_conversion" not in st.session_state:
        st.session_state.last_conversion = None
    if "last_code" not in st.session_state:
        st.session_state.last_code = None


def render_mermaid_preview(mermaid_code: str, height: int = 520) -> None:
    escaped = html.escape(mermaid_code or "")
    mermaid_html = f"""
<div style="padding: 8px;">
  <pre class="mermaid">{escaped}</pre>
  <div id="render_error" style="color:#b91c1c;font-family:monospace;"></div>
</div>
<script>
  function formatMermaidError(err) {{
    if (!err) return "unknown error";
    if (typeof err === "string") return err;
    if (err.message) return err.message;
    if (err.str) return err.str;
    return String(err);
  }}

  function renderMermaid() {{
    try {{
      mermaid.initialize({{ startOnLoad: false, securityLevel: "loose" }});
      const nodes = document.querySelectorAll(".mermaid");
      mermaid.run({{ nodes }}).catch((err) => {{
        document.getElementById("render_error").textContent =
          "Mermaid render error: " + formatMermaidError(err);
      }});
    }} catch (err) {{
      document.getElementById("render_error").textContent =
        "Mermaid init error: " + formatMermaidError(err);
    }}
  }}

  if (window.mermaid) {{
    renderMermaid();
  }} else {{
    const script = document.createElement("script");
    script.src = "https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js";
    script.onload = renderMermaid;
    script.onerror = function() {{
      document.getElementById("render_error").textContent = "Failed to load Mermaid runtime.";
    }};
    document.head.appendChild(script);
  }}
</script>
"""
    components.html(mermaid_html, height=height, scrolling=True)


def render_validation(kind: str, mermaid_code: str) -> None:
    report = DiagramValidator().validate(kind, mermaid_code)
    for finding in report.errors:
        st.warning(finding.message)
    if report.warnings:
        with st.expander(f"Structure warnings ({len(report.warnings)})", expanded=False):
            for finding in report.warnings:
                st.caption(f"{finding.rule_id}: {finding.message}")


def render_diagram_result(kind: str, mermaid_code: str, diagram_id: str, links: dict, key: str) -> None:
    render_validation(kind, mermaid_code)
    edited = st.text_area("Mermaid", value=mermaid_code, height=240, key=f"{key}_editor")
    render_mermaid_preview(edited)
    if st.button("Save diagram", key=f"{key}_save"):
        try:
            get_store().save_diagram(diagram_id, kind, edited, links=links)
        except ValueError as exc:
            st.error(str(exc))
        else:
            st.success(f"Saved diagram {diagram_id}.")


def render_requirement_tab() -> None:
    store = get_store()
    source = st.radio("Requirement source", ["Database", "Manual"], horizontal=True, key="req_source")
    if source == "Database":
        items = store.list_requirements()
        if not items:
            st.info("No requirements saved yet.")
            return
        selected = st.selectbox(
            "Requirement",
            items,
            format_func=lambda item: f"{item['id']} [{item['reqType']}] {item['title']}",
            key="req_select",
        )
        req_id, req_type = selected["id"], selected["reqType"]
        title, desc = selected["title"], selected["desc"]
    else:
        req_type = st.selectbox(
            "Requirement type",
            list(REQUIREMENT_TYPES),
            format_func=lambda value: REQUIREMENT_TYPE_LABELS.get(value, value),
            key="req_type",
        )
        req_id = st.text_input("Requirement ID", key="req_id")
        title = st.text_input("Title", key="req_title")
        desc = st.text_area("Description", key="req_desc")
        if st.button("Save requirement", key="req_save"):
            try:
                store.save_requirement(req_id, req_type, title=title, desc=desc)
            except ValueError as exc:
                st.error(str(exc))
            else:
                st.success(f"Saved requirement {req_id}.")

    kind = st.selectbox("Diagram kind", DIAGRAM_KINDS, key="req_kind")
    diagram_id = st.text_input("Diagram ID", key="req_diagram_id")
    if st.button("Convert to Mermaid", type="primary", key="req_convert"):
        with st.spinner("Generating diagram..."):
            try:
                result = get_conversion_service().requirement_to_mermaid(
                    req_type, req_id, kind, diagram_id, title=title, desc=desc
                )
            except (ValueError, RuntimeError) as exc:
                st.error(str(exc))
                return
        st.session_state.last_conversion = result

    result = st.session_state.last_conversion
    if result is not None and result.linked.get("reqId"):
        render_diagram_result(result.kind, result.mermaid, result.diagram_id, result.linked, key="req_result")


def render_code_tab() -> None:
    store = get_store()
    codes = store.list_codes()
    source = st.radio("Code source", ["Database", "Manual"], horizontal=True, key="code_source")
    if source == "Database" and codes:
        selected = st.selectbox(
            "Code",
            codes,
            format_func=lambda item: f"{item['codeId']} ({item['language']})",
            key="code_select",
        )
        code_id, language, code = selected["codeId"], selected["language"], selected["code"]
        sw_req_id = selected["swReqId"]
    else:
        if source == "Database":
            st.info("No code saved yet, switch to manual input.")
        code_id = st.text_input("Code ID", key="code_id")
        language = st.text_input("Language", value="python", key="code_language")
        code = st.text_area("Source code", height=240, key="code_text")
        sw_req_id = st.text_input("SW test requirement ID", key="code_sw_req")
        if st.button("Save code", key="code_save"):
            try:
                store.save_code(code_id, language, code, sw_req_id=sw_req_id)
            except ValueError as exc:
                st.error(str(exc))
            else:
                st.success(f"Saved code {code_id}.")

    kind = st.selectbox("Diagram kind", DIAGRAM_KINDS, key="code_kind")
    diagram_id = st.text_input("Diagram ID", key="code_diagram_id")
    if st.button("Convert to Mermaid", type="primary", key="code_convert"):
        with st.spinner("Generating diagram..."):
            try:
                result = get_conversion_service().code_to_mermaid(
                    code_id, language, code, kind, diagram_id, sw_req_id
                )
            except (ValueError, RuntimeError) as exc:
                st.error(str(exc))
                return
        st.session_state.last_conversion = result

    result = st.session_state.last_conversion
    if result is not None and result.linked.get("codeId"):
        render_diagram_result(result.kind, result.mermaid, result.diagram_id, result.linked, key="code_result")


def render_mermaid_to_code_tab() -> None:
    store = get_store()
    diagrams = store.list_diagrams()
    source = st.radio("Diagram source", ["Database", "Manual"], horizontal=True, key="mm_source")
    diagram_id = ""
    mermaid_text = ""
    if source == "Database" and diagrams:
        selected = st.selectbox(
            "Diagram",
            diagrams,
            format_func=lambda item: f"{item['diagramId']} ({item['kind']})",
            key="mm_select",
        )
        diagram_id, kind = selected["diagramId"], selected["kind"]
        render_mermaid_preview(selected["mermaid"], height=360)
    else:
        if source == "Database":
            st.info("No diagrams saved yet, switch to manual input.")
        kind = st.selectbox("Diagram kind", DIAGRAM_KINDS, key="mm_kind")
        mermaid_text = st.text_area("Mermaid", height=240, key="mm_text")
        if mermaid_text.strip():
            render_mermaid_preview(normalize(mermaid_text, kind), height=360)

    language = st.text_input("Target language", value="python", key="mm_language")
    sw_req_id = st.text_input("SW test requirement ID", key="mm_sw_req")
    code_id = st.text_input("Code ID (optional)", key="mm_code_id")
    if st.button("Generate code", type="primary", key="mm_convert"):
        with st.spinner("Generating code..."):
            try:
                st.session_state.last_code = get_conversion_service().mermaid_to_code(
                    kind, language, sw_req_id, mermaid=mermaid_text, diagram_id=diagram_id, code_id=code_id
                )
            except (ValueError, RuntimeError) as exc:
                st.error(str(exc))
                return

    generated = st.session_state.last_code
    if generated is not None:
        st.code(generated.code, language=generated.language.lower())
        if st.button("Save code", key="mm_save"):
            comment = "#" if "python" in generated.language.lower() else "//"
            header = f"{comment} generated from diagram {generated.diagram_id or '(inline)'}\n"
            try:
                store.save_code(generated.code_id, generated.language, header + generated.code, sw_req_id=sw_req_id)
            except ValueError as exc:
                st.error(str(exc))
            else:
                st.success(f"Saved code {generated.code_id}.")


def render_normalizer_tab() -> None:
    kind = st.selectbox("Diagram kind", ["(unspecified)"] + DIAGRAM_KINDS, key="norm_kind")
    kind = "" if kind == "(unspecified)" else kind
    raw = st.text_area("Raw Mermaid", height=240, key="norm_raw")
    if not raw.strip():
        return
    normalized = normalize(raw, kind)
    left, right = st.columns(2)
    with left:
        st.code(normalized, language="mermaid")
        render_validation(kind, normalized)
    with right:
        render_mermaid_preview(normalized, height=420)


def render_database_tab() -> None:
    store = get_store()
    st.markdown("### Requirements")
    st.dataframe(store.list_requirements(), use_container_width=True)
    st.markdown("### Code")
    st.dataframe(store.list_codes(), use_container_width=True)
    st.markdown("### Diagrams")
    for diagram in store.list_diagrams():
        with st.expander(f"{diagram['diagramId']} ({diagram['kind']})", expanded=False):
            st.code(diagram["mermaid"], language="mermaid")
            st.json(diagram["links"], expanded=False)


st.set_page_config(layout="wide")
st.title("UML Studio")
ensure_state()

with st.sidebar:
    st.markdown("### LLM Settings")
    st.session_state.llm_key_source = st.radio(
        "API key source",
        ["Environment", "Input in App"],
        index=0 if st.session_state.llm_key_source == "Environment" else 1,
    )
    if st.session_state.llm_key_source == "Input in App":
        st.session_state.llm_api_key = st.text_input(
            "OpenAI API key", value=st.session_state.llm_api_key, type="password"
        )
    st.session_state.llm_model = st.text_input("Model", value=st.session_state.llm_model)
    if not get_runtime_llm_client().is_enabled():
        st.caption("No API key configured; conversions are disabled.")

req_tab, code_tab, mm_tab, norm_tab, db_tab = st.tabs(
    ["Requirement → Mermaid", "Code → Mermaid", "Mermaid → Code", "Normalizer", "Database"]
)
with req_tab:
    render_requirement_tab()
with code_tab:
    render_code_tab()
with mm_tab:
    render_mermaid_to_code_tab()
with norm_tab:
    render_normalizer_tab()
with db_tab:
    render_database_tab()
