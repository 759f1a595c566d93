import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Protocol

from .settings import Settings

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


class TextCompletionClient(Protocol):
    def is_enabled(self) -> bool:  # pragma: no cover - runtime integration path
        ...

    def complete_text(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
        ...


class OpenAITextClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or Settings.from_env()
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.model
        self.timeout_seconds = timeout_seconds or settings.timeout_seconds

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    def complete_text(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
        if not self.is_enabled():
            raise RuntimeError("OPENAI_API_KEY is not configured.")

        payload = {
            "model": self.model,
            "temperature": temperature,
            "messages": chat_messages(system_prompt, user_prompt),
        }
        logger.debug("requesting completion model=%s prompt_chars=%d", self.model, len(user_prompt))
        return message_text(self._post(payload))

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        request = urllib.request.Request(
            url=CHAT_COMPLETIONS_URL,
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            details = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"OpenAI API error: {details}") from exc
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Network error: {exc}") from exc
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise RuntimeError("OpenAI API returned a non-JSON body.") from exc


def chat_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    messages = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


def message_text(parsed: Dict[str, Any]) -> str:
    """Text of the first choice; diagrams and code both come back as plain text."""
    choices = parsed.get("choices") or []
    message = choices[0].get("message") if choices else None
    if not message or message.get("content") is None:
        raise RuntimeError("OpenAI response has no message content.")
    return str(message["content"]).strip()
