# src/ai_canvas/prompts/tools.py

"""
Text-LLM prompt tools:
- refine_prompt: make a prompt more specific, descriptive and creative
- prompts_from_document: turn a .txt/.md document into 5-10 image prompts
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from ..core.ports import LLMClient

logger = logging.getLogger(__name__)

MAX_DOCUMENT_PROMPTS = 10
SUPPORTED_DOCUMENT_SUFFIXES = (".txt", ".md")

REFINE_SYSTEM_PROMPT = (
    "You are an AI expert in refining prompts for image generation. Your goal is to take the "
    "user's prompt and make it more specific, descriptive, and creative, so that it can generate "
    "a better image.\n"
    "Answer with the refined prompt only: one paragraph, no preamble, no quotes."
)

DOCUMENT_SYSTEM_PROMPT = (
    "You are an expert in visual conceptualization and an AI assistant specialized in creating "
    "image generation prompts.\n\n"
    "Your task is to analyze the document content sent by the user and generate a list of 5 to 10 "
    "descriptive, specific, and creative image prompts that capture the key themes, scenes, "
    "characters, and emotions of the text. Each prompt should be a single, detailed sentence "
    "suitable for a text-to-image AI model.\n\n"
    "Focus on creating prompts that are visually rich and evocative.\n"
    'Answer with JSON only, in the form {"prompts": ["...", "..."]}.'
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_REFINED_LABEL_RE = re.compile(r"^\s*refined prompt\s*:\s*", re.IGNORECASE)


class PromptToolError(RuntimeError):
    """The LLM produced nothing usable."""


class UnsupportedDocumentError(ValueError):
    """Only .txt and .md documents can be turned into prompts."""


def _collect(llm: LLMClient, user_text: str, system_prompt: str) -> str:
    return "".join(llm.stream_chat([{"role": "user", "content": user_text}], system_prompt)).strip()


def refine_prompt(llm: LLMClient, text: str) -> str:
    original = (text or "").strip()
    if not original:
        raise ValueError("prompt is empty")

    raw = _collect(llm, original, REFINE_SYSTEM_PROMPT)
    refined = _REFINED_LABEL_RE.sub("", raw)
    refined = " ".join(refined.split()).strip().strip('"').strip()
    if not refined:
        raise PromptToolError("The model returned an empty refined prompt.")

    logger.info("Prompt refined (%d -> %d chars)", len(original), len(refined))
    return refined


def parse_prompt_list(raw: str) -> list[str]:
    """
    Parse an LLM answer into prompts.

    Accepts {"prompts": [...]}, a bare JSON array (both possibly inside code fences),
    or falls back to one prompt per line (list markers stripped).
    """
    text = _FENCE_RE.sub("", (raw or "").strip()).strip()

    items: list[str] | None = None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("prompts"), list):
        items = [str(x) for x in data["prompts"]]
    elif isinstance(data, list):
        items = [str(x) for x in data]

    if items is None:
        items = [_LIST_MARKER_RE.sub("", ln) for ln in text.splitlines()]

    return [p.strip() for p in items if p and p.strip()]


def prompts_from_document(llm: LLMClient, content: str) -> list[str]:
    doc = (content or "").strip()
    if not doc:
        raise ValueError("document is empty")

    raw = _collect(llm, doc, DOCUMENT_SYSTEM_PROMPT)
    prompts = parse_prompt_list(raw)[:MAX_DOCUMENT_PROMPTS]
    if not prompts:
        raise PromptToolError("The model did not return any prompts for this document.")

    logger.info("Generated %d prompts from a %d-char document", len(prompts), len(doc))
    return prompts


def read_document(path: str | Path) -> str:
    path = Path(path)
    if path.suffix.lower() not in SUPPORTED_DOCUMENT_SUFFIXES:
        raise UnsupportedDocumentError("Unsupported file format. Please use a .txt or .md file.")
    return path.read_text("utf-8")
