"""Offline development helpers."""
