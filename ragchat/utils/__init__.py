"""Utility modules for ragchat.

- **errors** -- exception hierarchy rooted at RagChatError.
- **logging** -- structlog setup with console/JSON renderers.
- **retry** -- explicit attempt results and the bounded retry wrapper.
- **concurrency** -- single-flight loads and per-key locks.
"""
