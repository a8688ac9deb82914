"""Shared helpers: logging, errors and token counting."""
