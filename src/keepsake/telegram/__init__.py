"""Telegram transport."""

from .bot import TelegramBot, TelegramSender

__all__ = ["TelegramBot", "TelegramSender"]
