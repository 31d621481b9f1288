# Domain Entities Package
"""
Core entities as dataclasses.
"""

from .credential import Clock, Credential, now_ms

__all__ = ["Clock", "Credential", "now_ms"]
