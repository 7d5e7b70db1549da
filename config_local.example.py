# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for secrets. Only SD_ENDPOINT, SD_CHECKPOINT and LOG_LEVEL are read from here.
"""

# Example: point at a WebUI running on another box
# SD_ENDPOINT = "http://192.168.1.20:7860/sdapi/v1/txt2img"

# Example: always request a specific checkpoint
# SD_CHECKPOINT = "sd_xl_base_1.0.safetensors"

# LOG_LEVEL = "DEBUG"
