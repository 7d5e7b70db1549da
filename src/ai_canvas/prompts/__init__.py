"""Prompt tools: refinement, prompts-from-document, saved prompt list."""
