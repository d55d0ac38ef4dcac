"""Slack invite relay.

Accepts form submissions and Slack interactive-button callbacks over HTTP and
forwards them, asynchronously and with retries, to a Slack incoming webhook
and to Slack's invite endpoint.
"""

__version__ = "0.1.0"
