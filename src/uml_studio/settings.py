import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "gpt-4o-mini"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    model: str = DEFAULT_MODEL
    data_dir: Path = Path("outputs")
    log_level: str = "INFO"
    timeout_seconds: int = 40

    @classmethod
    def from_env(cls) -> "Settings":
        model = os.getenv("MODEL_ID", "").strip() or os.getenv("OPENAI_MODEL", "").strip() or DEFAULT_MODEL
        try:
            timeout_seconds = int(os.getenv("OPENAI_TIMEOUT_SECONDS", "40"))
        except ValueError:
            timeout_seconds = 40
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            model=model,
            data_dir=Path(os.getenv("UML_STUDIO_DATA_DIR", "outputs")),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            timeout_seconds=timeout_seconds,
        )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if getattr(root, "_uml_studio_configured", False):
        return
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root._uml_studio_configured = True  # type: ignore[attr-defined]
