"""Logging setup for the relay server."""
