"""Molt-Guard — inline security gateway for a local LLM inference backend.

Screens inbound prompts for injection (local heuristic or backend-hosted guard
model) and redacts secrets and PII from model output before it reaches the
caller.
"""

__version__ = "1.0.0"
