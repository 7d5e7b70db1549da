"""
Core application wiring.

Components:
- ports.py: protocols implemented by backends and stores
- state.py: AppState and the local-generation session
"""
