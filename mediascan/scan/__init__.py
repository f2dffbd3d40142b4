"""Scan engine: discovery, extraction, control, progress and scheduling."""
