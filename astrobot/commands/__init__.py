"""Slash command handlers: join, leave, record and finish."""