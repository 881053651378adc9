"""
FormRelay
Contact form intake: durable storage with best-effort email notification.
"""

__version__ = "1.0.0"
