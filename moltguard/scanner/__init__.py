"""Content scanning: redaction rules, the redaction pipeline and the local blocklist."""
