# src/ai_canvas/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, cast

from ..batch.api import create_batch, default_run_id, retry_run, start_or_resume, summarize_run
from ..batch.models import BatchBackend, BatchItem, BatchProgress
from ..batch.runner import BatchNotFoundError, parse_prompt_list, request_pause
from ..core.state import AppState
from ..generation.base import GenerationError, friendly_error_message
from ..generation.flows import generate_local, generate_remote
from ..generation.local_sd import LocalGenerationParams
from ..images.media import format_bytes
from ..images.models import AIImage
from ..images.transfer import ImportFormatError, default_export_name, export_to_file, import_from_file
from ..llm.client import friendly_llm_error_message
from ..prompts.saved import save_prompts
from ..prompts.tools import (
    PromptToolError,
    UnsupportedDocumentError,
    prompts_from_document,
    read_document,
    refine_prompt,
)

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /gen, /batch, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  Plain text (no slash) generates an image with Gemini.")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_id(args: list[str], usage: str) -> int | str:
    """Return the image/run id from args[0], or a usage string."""
    if not args:
        return usage
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return usage


def _describe(img: AIImage) -> str:
    fav = "★" if img.is_favorite else " "
    tags = f" [{', '.join(img.tags)}]" if img.tags else ""
    return f"{fav} #{img.id} {img.name} ({img.model}, {img.resolution}){tags}"


def _stored_reply(img: AIImage) -> str:
    return f"Image generated and saved to history: #{img.id} {img.resolution}, {format_bytes(img.size)}."


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    models = ", ".join(list(getattr(s, "llm_models", []) or []))
    loc = state.local
    return (
        "Status:\n"
        f"  Images in history: {state.images.count_images()}\n"
        f"  Gemini image model: {getattr(s, 'gemini_image_model', '?')}\n"
        f"  Prompt LLM models (priority -> fallback): {models}\n"
        f"  Local endpoint: {getattr(state.local_sd, 'endpoint', '?')}\n"
        f"  Local params: steps={loc.steps} cfg={loc.cfg_scale:g} "
        f"checkpoint={loc.checkpoint_model or '(server default)'}\n"
        f"  Negative prompt: {loc.negative_prompt or '(none)'}\n"
        f"  Saved prompts: {len(state.saved_prompts)}"
    )


def cmd_gen(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /gen <prompt>  -> generate with Gemini
    /gen           -> generate from the last /refine result (keeps the original prompt)
    """
    text = " ".join(args).strip()
    original: str | None = None
    if not text:
        if state.pending_refinement is None:
            return "The prompt is empty. Usage: /gen <prompt> (or /refine first)."
        original, text = state.pending_refinement

    if emit:
        emit("[Gemini] Generating...")
    try:
        img = asyncio.run(generate_remote(state, text, original_prompt=original))
    except (GenerationError, ValueError) as e:
        logger.info("Gemini generation failed: %s", e)
        return f"Generation failed: {friendly_error_message(e)}"

    state.pending_refinement = None
    return _stored_reply(img)


def cmd_refine(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    text = " ".join(args).strip()
    if not text:
        return "The prompt is empty. Usage: /refine <prompt>"
    try:
        refined = refine_prompt(state.llm, text)
    except (PromptToolError, RuntimeError) as e:
        logger.info("Refine failed: %s", e)
        return f"Could not refine the prompt: {friendly_llm_error_message(e)}"

    state.pending_refinement = (text, refined)
    return f"Refined prompt:\n  {refined}\nUse /gen to generate it (the original prompt is kept in history)."


def cmd_local(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    text = " ".join(args).strip()
    if not text:
        return "The prompt is empty. Usage: /local <prompt>"

    if emit:
        emit(f"[Local] Generating (steps={state.local.steps}, cfg={state.local.cfg_scale:g})...")
    try:
        img = asyncio.run(generate_local(state, state.local.params_for(text)))
    except (GenerationError, ValueError) as e:
        logger.info("Local generation failed: %s", e)
        return f"Generation failed: {friendly_error_message(e)}"
    return _stored_reply(img)


def cmd_checkpoint(state: AppState, args: list[str]) -> str:
    """
    /checkpoint             -> show the selected checkpoint
    /checkpoint fetch       -> read the current checkpoint from the server
    /checkpoint list        -> list checkpoints available on the server
    /checkpoint set <name>  -> use <name> for local generations
    /checkpoint clear       -> use the server's current model
    """
    if not args:
        return f"Checkpoint: {state.local.checkpoint_model or '(server default)'}"

    sub = args[0].lower()
    try:
        if sub == "fetch":
            name = asyncio.run(state.local_sd.get_current_checkpoint())
            state.local.checkpoint_model = name
            return f"Checkpoint fetched. Current base model: {name}"
        if sub == "list":
            names = asyncio.run(state.local_sd.list_checkpoints())
            if not names:
                return "The server did not report any checkpoints."
            return "Available checkpoints:\n" + "\n".join(f"  - {n}" for n in names)
    except GenerationError as e:
        return f"Could not read the checkpoint: {friendly_error_message(e)}"

    if sub == "set" and len(args) > 1:
        state.local.checkpoint_model = " ".join(args[1:]).strip()
        return f"Checkpoint set: {state.local.checkpoint_model}"
    if sub == "clear":
        state.local.checkpoint_model = ""
        return "Checkpoint cleared (server default will be used)."

    return "Usage: /checkpoint [fetch | list | set <name> | clear]"


def cmd_sd(state: AppState, args: list[str]) -> str:
    """
    /sd                 -> show local sampling params
    /sd steps <1-100>
    /sd cfg <1-20>      (0.5 increments)
    /sd neg <text>      (/sd neg with no text clears it)
    """
    loc = state.local
    if not args:
        return (
            f"Local params: steps={loc.steps} cfg={loc.cfg_scale:g}\n"
            f"  negative prompt: {loc.negative_prompt or '(none)'}"
        )

    sub = args[0].lower()
    if sub == "neg":
        loc.negative_prompt = " ".join(args[1:]).strip()
        return f"Negative prompt: {loc.negative_prompt or '(none)'}"

    if sub in ("steps", "cfg") and len(args) == 2:
        try:
            if sub == "steps":
                candidate = LocalGenerationParams(prompt="-", steps=int(args[1]), cfg_scale=loc.cfg_scale)
            else:
                candidate = LocalGenerationParams(prompt="-", steps=loc.steps, cfg_scale=float(args[1]))
            candidate.validate()
        except ValueError as e:
            return f"Invalid value: {e}"
        loc.steps = candidate.steps
        loc.cfg_scale = candidate.cfg_scale
        return f"Local params: steps={loc.steps} cfg={loc.cfg_scale:g}"

    return "Usage: /sd [steps N | cfg X | neg <text>]"


def cmd_history(state: AppState, args: list[str]) -> str:
    term = " ".join(args).strip()
    images = state.images.list_images(search=term, limit=50)
    if not images:
        if term:
            return f'No images match your search for "{term}".'
        return "No images yet. Generate your first one with /gen <prompt>."
    total = state.images.count_images()
    header = f"{len(images)} image(s)" + (f' matching "{term}"' if term else f" of {total}") + ":"
    return "\n".join([header, *(_describe(i) for i in images)])


def cmd_favs(state: AppState, args: list[str]) -> str:
    images = state.images.list_images(favorites_only=True)
    if not images:
        return "No favorites yet. Use /fav <id> to mark one."
    return "\n".join(["Favorites:", *(_describe(i) for i in images)])


def cmd_tags(state: AppState, args: list[str]) -> str:
    tags = state.images.list_tags()
    if not tags:
        return "No tags yet. Use /tag <id> <tag>."
    return "Tags:\n" + "\n".join(f"  {t} ({n})" for t, n in tags)


def cmd_show(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /show <id>")
    if isinstance(image_id, str):
        return image_id
    img = state.images.get_image(image_id)
    if img is None:
        return f"No image with id #{image_id}."
    lines = [
        f"Image #{img.id}: {img.name}",
        f"  Prompt: {img.prompt}",
    ]
    if img.refined_prompt:
        lines.append(f"  Refined prompt: {img.refined_prompt}")
    if img.translation:
        lines.append(f"  Translation: {img.translation}")
    lines.append(f"  Model: {img.model}")
    if img.checkpoint_model:
        lines.append(f"  Checkpoint: {img.checkpoint_model}")
    lines.extend(
        [
            f"  Resolution: {img.resolution}",
            f"  Size: {format_bytes(img.size)}",
            f"  Favorite: {'yes' if img.is_favorite else 'no'}",
            f"  Tags: {', '.join(img.tags) if img.tags else '(none)'}",
            f"  Created on {img.created_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
        ]
    )
    return "\n".join(lines)


def cmd_fav(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /fav <id>")
    if isinstance(image_id, str):
        return image_id
    fav = state.images.toggle_favorite(image_id)
    if fav is None:
        return f"No image with id #{image_id}."
    return f"Image #{image_id} {'added to' if fav else 'removed from'} favorites."


def cmd_tag(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /tag <id> <tag>")
    if isinstance(image_id, str) or len(args) < 2:
        return "Usage: /tag <id> <tag>"
    tag = " ".join(args[1:]).strip()
    if state.images.get_image(image_id) is None:
        return f"No image with id #{image_id}."
    if not state.images.add_tag(image_id, tag):
        return f"Image #{image_id} already has tag '{tag}'."
    return f"Tag '{tag}' added to #{image_id}."


def cmd_untag(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /untag <id> <tag>")
    if isinstance(image_id, str) or len(args) < 2:
        return "Usage: /untag <id> <tag>"
    tag = " ".join(args[1:]).strip()
    if not state.images.remove_tag(image_id, tag):
        return f"Image #{image_id} has no tag '{tag}'."
    return f"Tag '{tag}' removed from #{image_id}."


def cmd_rename(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /rename <id> <name>")
    name = " ".join(args[1:]).strip()
    if isinstance(image_id, str) or not name:
        return "Usage: /rename <id> <name>"
    if not state.images.update_image(image_id, name=name):
        return f"No image with id #{image_id}."
    return f"Image #{image_id} renamed."


def cmd_delete(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /delete <id>")
    if isinstance(image_id, str):
        return image_id
    if not state.images.delete_image(image_id):
        return f"No image with id #{image_id}."
    return f"Image #{image_id} permanently deleted from history."


def cmd_save(state: AppState, args: list[str]) -> str:
    image_id = _parse_id(args, "Usage: /save <id> <path>")
    if isinstance(image_id, str) or len(args) < 2:
        return "Usage: /save <id> <path>"
    img = state.images.get_image(image_id)
    if img is None:
        return f"No image with id #{image_id}."
    path = Path(" ".join(args[1:])).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(img.data)
    return f"Image #{image_id} written to {path} ({format_bytes(img.size)})."


def cmd_export(state: AppState, args: list[str]) -> str:
    if state.images.count_images() == 0:
        return "Nothing to export: your image history is empty."
    if args:
        path = Path(" ".join(args)).expanduser()
    else:
        path = Path(state.settings.export_dir) / default_export_name()
    n = export_to_file(state.images, path)
    return f"History exported: {n} image(s) -> {path}"


def cmd_import(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /import <path-to-export.json>"
    path = Path(" ".join(args)).expanduser()
    try:
        ids = import_from_file(state.images, path)
    except FileNotFoundError:
        return f"File not found: {path}"
    except ImportFormatError as e:
        logger.info("Import failed: %s", e)
        return f"The selected file is not a valid history export ({e})."
    return f"History imported: {len(ids)} image(s)."


def cmd_docprompts(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /docprompts <file.txt|file.md>"
    path = Path(" ".join(args)).expanduser()
    try:
        content = read_document(path)
    except UnsupportedDocumentError as e:
        return str(e)
    except FileNotFoundError:
        return f"File not found: {path}"

    if emit:
        emit(f"[Prompts] Reading {path.name}...")
    try:
        prompts = prompts_from_document(state.llm, content)
    except (PromptToolError, RuntimeError, ValueError) as e:
        logger.info("Prompts from document failed: %s", e)
        return f"Could not generate prompts from the document: {friendly_llm_error_message(e)}"

    state.saved_prompts = prompts
    save_prompts(state.settings.saved_prompts_path, prompts)
    lines = [f"{len(prompts)} prompts created from {path.name} (saved; run them with /batch saved):"]
    lines.extend(f"  {i}. {p}" for i, p in enumerate(prompts, start=1))
    return "\n".join(lines)


def cmd_prompts(state: AppState, args: list[str]) -> str:
    """
    /prompts        -> show saved prompts
    /prompts clear  -> forget them
    """
    if args and args[0].lower() == "clear":
        state.saved_prompts = []
        save_prompts(state.settings.saved_prompts_path, [])
        return "Saved prompts cleared."
    if not state.saved_prompts:
        return "No saved prompts. Use /docprompts <file> to create some."
    return "Saved prompts:\n" + "\n".join(f"  {i}. {p}" for i, p in enumerate(state.saved_prompts, start=1))


def _run_batch_blocking(coro_factory: Callable[[], Coroutine[Any, Any, BatchProgress]]) -> str:
    """Run a batch coroutine in the console thread; Ctrl+C pauses it after checkpointing."""
    try:
        progress = asyncio.run(coro_factory())
    except KeyboardInterrupt:
        return "Batch paused (Ctrl+C). The interrupted prompt stays pending; use /batch resume."
    except BatchNotFoundError as e:
        return str(e)
    return f"Batch finished: {progress}"


def _progress_printer(emit: CommandEmitter | None) -> Callable[[BatchItem, BatchProgress], None] | None:
    if emit is None:
        return None

    def _on_progress(item: BatchItem, progress: BatchProgress) -> None:
        mark = "✓" if item.status.value == "success" else "✗"
        suffix = f" -> image #{item.image_id}" if item.image_id is not None else f" ({item.error})"
        with contextlib.suppress(Exception):
            emit(f"[Batch {progress.done}/{progress.total}] {mark} {item.prompt[:60]}{suffix}")

    return _on_progress


def cmd_batch(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /batch start <file> [gemini]  -> one prompt per line from <file> (local backend by default)
    /batch saved [gemini]         -> run the saved prompts (from /docprompts)
    /batch status [id]            -> progress of a run (latest unfinished, else latest)
    /batch list                   -> recent runs
    /batch pause [id]             -> pause a run (takes effect after the current prompt)
    /batch resume [id]            -> continue from the next pending prompt
    /batch retry [id]             -> re-run failed prompts (latest run with failures)
    """
    usage = "Usage: /batch start <file> [gemini] | saved [gemini] | status [id] | list | pause [id] | resume [id] | retry [id]"
    if not args:
        return usage

    sub = args[0].lower()
    rest = args[1:]
    on_progress = _progress_printer(emit)

    if sub in ("start", "saved"):
        backend = BatchBackend.LOCAL
        if rest and rest[-1].lower() in ("gemini", "local"):
            backend = BatchBackend(rest[-1].lower())
            rest = rest[:-1]

        if sub == "saved":
            prompts = list(state.saved_prompts)
        else:
            if not rest:
                return usage
            path = Path(" ".join(rest)).expanduser()
            try:
                prompts = parse_prompt_list(path.read_text("utf-8"))
            except FileNotFoundError:
                return f"File not found: {path}"

        if not prompts:
            return "No prompts: please provide at least one prompt to start."

        try:
            run_id = create_batch(state, prompts, backend=backend)
        except ValueError as e:
            return f"Cannot start batch: {e}"
        if emit:
            emit(f"[Batch] Run #{run_id} started: {len(prompts)} prompt(s), backend={backend.value}. Ctrl+C pauses.")
        reply = _run_batch_blocking(lambda: start_or_resume(state, run_id, on_progress=on_progress))
        return f"{reply}\n{summarize_run(state, run_id, show_items=False)}"

    if sub == "list":
        runs = state.batches.list_runs(limit=10)
        if not runs:
            return "No batch runs yet."
        lines = ["Recent batch runs:"]
        for run in runs:
            lines.append(f"  #{run.id} [{run.status.value}] {run.backend.value}: {state.batches.progress(run.id)}")
        return "\n".join(lines)

    explicit: int | None = None
    if rest:
        parsed = _parse_id(rest, usage)
        if isinstance(parsed, str):
            return parsed
        explicit = parsed
    run_id = explicit if explicit is not None else default_run_id(state, sub)
    if run_id is None:
        if sub == "retry":
            return "No batch run has failed prompts."
        if sub == "status":
            return "No batch runs yet."
        return "No unfinished batch run."

    try:
        if sub == "status":
            return summarize_run(state, run_id)
        if sub == "pause":
            if not request_pause(state.batches, run_id):
                return f"Batch #{run_id} cannot be paused (unknown or already completed)."
            state.pause_event.set()
            return f"Batch #{run_id} will pause after the current prompt."
    except BatchNotFoundError as e:
        return str(e)

    if sub == "resume":
        reply = _run_batch_blocking(lambda: start_or_resume(state, run_id, on_progress=on_progress))
        return reply
    if sub == "retry":
        reply = _run_batch_blocking(lambda: retry_run(state, run_id, on_progress=on_progress))
        return reply

    return usage


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["?"])
registry.register("status", cmd_status, help_text="Show current settings and history size.")
registry.register("gen", cmd_gen, help_text="Generate with Gemini: /gen <prompt> (or /gen after /refine).", aliases=["g"])
registry.register("refine", cmd_refine, help_text="Refine a prompt with the text LLM: /refine <prompt>.")
registry.register("local", cmd_local, help_text="Generate with the local Stable Diffusion server: /local <prompt>.")
registry.register("checkpoint", cmd_checkpoint, help_text="Local checkpoint: /checkpoint [fetch|list|set <name>|clear].")
registry.register("sd", cmd_sd, help_text="Local sampling params: /sd [steps N|cfg X|neg <text>].")
registry.register("history", cmd_history, help_text="List images, optionally filtered: /history [name or tag].", aliases=["ls"])
registry.register("favs", cmd_favs, help_text="List favorite images.")
registry.register("tags", cmd_tags, help_text="List tags with usage counts.")
registry.register("show", cmd_show, help_text="Show image details: /show <id>.")
registry.register("fav", cmd_fav, help_text="Toggle favorite: /fav <id>.")
registry.register("tag", cmd_tag, help_text="Add a tag: /tag <id> <tag>.")
registry.register("untag", cmd_untag, help_text="Remove a tag: /untag <id> <tag>.")
registry.register("rename", cmd_rename, help_text="Rename an image: /rename <id> <name>.")
registry.register("delete", cmd_delete, help_text="Delete an image permanently: /delete <id>.", aliases=["rm"])
registry.register("save", cmd_save, help_text="Write image bytes to a file: /save <id> <path>.")
registry.register("export", cmd_export, help_text="Export history to JSON: /export [path].")
registry.register("import", cmd_import, help_text="Import a history export: /import <path>.")
registry.register("docprompts", cmd_docprompts, help_text="Create prompts from a .txt/.md document: /docprompts <file>.")
registry.register("prompts", cmd_prompts, help_text="Show or clear saved prompts: /prompts [clear].")
registry.register("batch", cmd_batch, help_text="Batch generation: /batch start|saved|status|list|pause|resume|retry.")
