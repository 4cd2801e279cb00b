"""Molt-Guard models package.

Shared data contracts used across the policy pipeline and proxy handlers:

  - policy.py  — ValidationMode, Sensitivity, Action, PolicyDecision
  - api.py     — pydantic wire schemas for the OpenAI and backend-native surfaces
  - block.py   — security-alert and gateway-error response builders
"""
