"""Utility helpers for metals-standalone."""
