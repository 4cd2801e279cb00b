"""Prompt policy: local heuristic and remote guard-model strategies."""
