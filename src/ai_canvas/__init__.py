"""AI Canvas: generate, browse, tag and batch-produce images with Gemini or a local Stable Diffusion server."""

__version__ = "0.1.0"
