"""Structured logging and performance tracking."""
