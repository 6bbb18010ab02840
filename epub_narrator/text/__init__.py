"""Text cleanup helpers."""
