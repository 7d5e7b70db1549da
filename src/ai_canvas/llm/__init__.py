"""Text LLM clients used for prompt refinement and prompt extraction."""
