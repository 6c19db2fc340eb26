"""
Terminal user interface components.
"""

from .rich_ui import RichProgressUI

__all__ = ["RichProgressUI"]
