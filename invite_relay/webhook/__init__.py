"""Relay HTTP front end.

Contains the FastAPI app factory, the interactive-callback models and the CLI
that receive form submissions and Slack button clicks and admit them to the
delivery pipelines.
"""
