"""
Handlers package for Scheduled Quiz Bot

This package contains the bot's Telegram handlers and the quiz core (handlers.quiz).
Handlers are imported by bot.py directly from their modules.
"""
