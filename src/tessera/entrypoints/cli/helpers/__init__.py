"""CLI helpers for TESSERA.

Utilities used by the command-line interface: URL sanitization for safe
display, logger-level option parsing, and message emitters that write to
stderr with emoji→ASCII fallbacks.
"""

from .db_url import sanitize_url
from .messages import error, success, warn

__all__ = ["sanitize_url", "warn", "success", "error"]
