"""Outbound client for the inference backend."""
