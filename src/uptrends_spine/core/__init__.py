"""Ambient primitives: errors, logging, settings and scheduling."""
