"""Shared infrastructure: logging, configuration, git and URL helpers."""
