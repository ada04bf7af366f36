"""Telegram bot that records transactions in a Firefly III ledger."""

__version__ = "0.1.0"
