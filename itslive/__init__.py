"""Livestream notifications and market cap alerts for pump.fun tokens on Telegram."""

__version__ = "0.1.0"
