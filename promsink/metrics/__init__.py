"""Metric construction, update, exposition and checkpoint helpers."""
