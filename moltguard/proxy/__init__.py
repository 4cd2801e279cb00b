"""Proxy layer: header hygiene, interception, forwarding and routes."""
