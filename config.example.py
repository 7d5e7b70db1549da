# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Keep API keys in .env (local, gitignored). config_local.py may hold a few safe overrides.
"""

ENV_VARS = {
    # App / logging
    "AICANVAS_APP_NAME": "App display name (default: ai-canvas).",
    "AICANVAS_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Gemini image generation
    "AICANVAS_GEMINI_API_KEY": "Gemini API key (falls back to GEMINI_API_KEY / GOOGLE_API_KEY).",
    "AICANVAS_GEMINI_IMAGE_MODEL": (
        "Image-capable Gemini model (default: gemini-2.0-flash-preview-image-generation)."
    ),
    # Text LLM for /refine and /docprompts
    "AICANVAS_LLM_API_KEY": "Key for the OpenAI-compatible text endpoint (default: the Gemini key).",
    "AICANVAS_LLM_BASE_URL": "OpenAI-compatible base URL (default: Gemini's /v1beta/openai/).",
    "AICANVAS_LLM_MODELS": "Comma/space separated list of text models to try in order.",
    "AICANVAS_LLM_FIRST_TOKEN_TIMEOUT_SECONDS": "Seconds to wait for the first streamed token (default: 30).",
    "AICANVAS_LLM_READ_TIMEOUT_SECONDS": "Read timeout for text LLM requests (default: 60).",
    "AICANVAS_LLM_CONNECT_TIMEOUT_SECONDS": "Connect timeout for text LLM requests (default: 5).",
    # Local Stable Diffusion (AUTOMATIC1111-compatible sdapi)
    "AICANVAS_SD_ENDPOINT": "txt2img URL (default: http://127.0.0.1:7860/sdapi/v1/txt2img).",
    "AICANVAS_SD_CHECKPOINT": "Checkpoint to request via override_settings (empty => server default).",
    "AICANVAS_SD_STEPS": "Default sampling steps, 1..100 (default: 25).",
    "AICANVAS_SD_CFG_SCALE": "Default CFG scale, 1..20 in 0.5 steps (default: 7).",
    "AICANVAS_SD_NEGATIVE_PROMPT": "Default negative prompt (default: empty).",
    "AICANVAS_SD_TIMEOUT_SECONDS": "HTTP timeout for local generation (default: 300).",
    # Paths (gitignored)
    "AICANVAS_DATA_DIR": "Local data directory (default: .local/ai-canvas).",
    "AICANVAS_IMAGES_DB_PATH": "ImageStore SQLite path (default: <data_dir>/images.sqlite3).",
    "AICANVAS_BATCH_DB_PATH": "BatchStore SQLite path (default: <data_dir>/batches.sqlite3).",
    "AICANVAS_SAVED_PROMPTS_PATH": "Saved prompt list JSON (default: <data_dir>/saved_prompts.json).",
    "AICANVAS_EXPORT_DIR": "Where /export and /save write files (default: <data_dir>/exports).",
}
