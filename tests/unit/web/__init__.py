"""Unit tests for gemstock web route modules.

Testing pattern:
    - One FastAPI app per test module with just the router under test
    - Engines/stores replaced through ``dependency_overrides`` or ``patch``
    - Identity taken from the ``X-User-Id`` header
    - Error mapping checked through the real exception handler
"""
