"""
Core business logic - framework-agnostic.
Used by the web API; the content engine lives in core.content.
"""

from .config import ContentSettings, load_content_settings

__all__ = [
    "ContentSettings",
    "load_content_settings",
]
