"""Core domain package for herald.

Core contains persistence, locking, scheduling, rate limiting and the
watchers themselves without any Telegram or HTTP-specific code, keeping the
business logic portable.
"""
