"""Shared helpers (exceptions, env flags, logging setup)."""
