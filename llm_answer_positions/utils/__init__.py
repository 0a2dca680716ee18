"""Shared helpers: logging, time, console output."""
