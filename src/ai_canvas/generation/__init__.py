"""
Image generation backends.

Components:
- base.py: shared errors and the GeneratedImage result
- gemini.py: remote generation via google-genai
- local_sd.py: Stable Diffusion WebUI (sdapi) client
- flows.py: generate + persist helpers used by the CLI and batch runner
"""
