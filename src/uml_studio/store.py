import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional

from .diagram_kinds import REQUIREMENT_TYPES
from .normalizer import strip_fence

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Database = Dict[str, Dict[str, Record]]

SECTIONS = ("requirements", "codes", "diagrams")


class StudioStore:
    """Requirements, source code items and diagrams kept in one JSON document.

    Every save rewrites ``db.json`` through a temporary file and an atomic
    rename, so readers never see a half-written document.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._db_file = self.base_dir / "db.json"

    @property
    def db_file(self) -> Path:
        return self._db_file

    def list_requirements(self, req_type: str = "") -> List[Record]:
        items = list(self._load()["requirements"].values())
        if req_type:
            items = [item for item in items if item.get("reqType", "") == req_type]
        return [
            {
                "id": item.get("id", ""),
                "reqType": item.get("reqType", ""),
                "title": item.get("title", ""),
                "desc": item.get("desc", ""),
            }
            for item in items
        ]

    def list_codes(self) -> List[Record]:
        return [
            {
                "codeId": item.get("codeId", ""),
                "language": item.get("language", ""),
                "code": item.get("code", ""),
                "swReqId": item.get("swReqId", ""),
            }
            for item in self._load()["codes"].values()
        ]

    def list_diagrams(self, kind: str = "") -> List[Record]:
        items = list(self._load()["diagrams"].values())
        if kind:
            wanted = str(kind).lower()
            items = [item for item in items if str(item.get("kind", "")).lower() == wanted]
        return [
            {
                "diagramId": item.get("diagramId", ""),
                "kind": item.get("kind", ""),
                "mermaid": item.get("mermaid", ""),
                "links": deepcopy(item.get("links") or {}),
            }
            for item in items
        ]

    def get_requirement(self, req_id: str) -> Optional[Record]:
        return self._get("requirements", req_id)

    def get_code(self, code_id: str) -> Optional[Record]:
        return self._get("codes", code_id)

    def get_diagram(self, diagram_id: str) -> Optional[Record]:
        return self._get("diagrams", diagram_id)

    def save_requirement(self, req_id: str, req_type: str, title: str = "", desc: str = "") -> Record:
        require_non_empty("id", req_id)
        require_non_empty("reqType", req_type)
        if req_type not in REQUIREMENT_TYPES:
            raise ValueError(f"Unknown requirement type: {req_type}")
        record = {"id": req_id, "reqType": req_type, "title": title or "", "desc": desc or ""}
        return self._put("requirements", req_id, record)

    def save_code(self, code_id: str, language: str, code: str, sw_req_id: str = "") -> Record:
        require_non_empty("codeId", code_id)
        require_non_empty("language", language)
        require_non_empty("code", code)
        record = {"codeId": code_id, "language": language, "code": code, "swReqId": sw_req_id or ""}
        return self._put("codes", code_id, record)

    def save_diagram(
        self,
        diagram_id: str,
        kind: str,
        mermaid: str,
        links: Optional[Dict[str, Any]] = None,
    ) -> Record:
        require_non_empty("diagramId", diagram_id)
        require_non_empty("kind", kind)
        require_non_empty("mermaid", mermaid)
        record = {
            "diagramId": diagram_id,
            "kind": kind,
            "mermaid": strip_fence(mermaid),
            "links": deepcopy(links or {}),
        }
        return self._put("diagrams", diagram_id, record)

    def load(self) -> Database:
        return deepcopy(self._load())

    def _get(self, section: str, key: str) -> Optional[Record]:
        record = self._load()[section].get(key)
        return deepcopy(record) if record is not None else None

    def _put(self, section: str, key: str, record: Record) -> Record:
        db = self._load()
        db[section][key] = record
        self._write(db)
        logger.info("saved %s item %s", section, key)
        return deepcopy(record)

    def _load(self) -> Database:
        if not self._db_file.exists():
            return _empty_db()
        try:
            with self._db_file.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("could not read %s, starting from an empty db: %s", self._db_file, exc)
            return _empty_db()
        if not isinstance(data, dict):
            return _empty_db()
        return {section: dict(data.get(section) or {}) for section in SECTIONS}

    def _write(self, db: Database) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        tmp_file = self._db_file.with_name(self._db_file.name + ".tmp")
        with tmp_file.open("w", encoding="utf-8") as handle:
            json.dump(db, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_file, self._db_file)


def require_non_empty(name: str, value: Any) -> None:
    if value is None or str(value).strip() == "":
        raise ValueError(f"{name} is required.")


def _empty_db() -> Database:
    return {section: {} for section in SECTIONS}
