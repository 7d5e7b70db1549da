# src/ai_canvas/llm/offline.py

from __future__ import annotations

import json
from collections.abc import Iterable

from ..core.ports import ChatMessage


class OfflineLLMClient:
    """
    Offline deterministic LLM client used when no text LLM is configured.

    Behavior:
    - Prompt refinement -> returns the user's prompt with a fixed quality suffix
    - Prompts from document -> returns {"prompts": [...]} built from the first lines
    - Anything else -> a short notice
    """

    REFINE_SUFFIX = "highly detailed, dramatic lighting, sharp focus"

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        sp = (system_prompt or "").lower()

        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        if "refining prompts" in sp:
            yield f"{user_text.strip().rstrip('.')}, {self.REFINE_SUFFIX}"
            return

        if "visual conceptualization" in sp:
            lines = [ln.strip() for ln in user_text.splitlines() if ln.strip() and not ln.startswith("---")]
            prompts = [f"An evocative illustration of: {ln[:120]}" for ln in lines[:5]]
            yield json.dumps({"prompts": prompts}, ensure_ascii=False)
            return

        yield "Offline mode: no text LLM is configured. Set AICANVAS_LLM_API_KEY to enable prompt tools."
