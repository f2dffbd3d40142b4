"""Core infrastructure: exceptions, event hub and persistence."""
