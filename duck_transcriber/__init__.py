"""Telegram bot that transcribes, translates and summarizes voice messages."""

__version__ = "0.1.0"
