"""
FormRelay API Routers
FastAPI router modules for the contact form service.
"""
from formrelay.api import contact, health

__all__ = [
    "contact",
    "health",
]
