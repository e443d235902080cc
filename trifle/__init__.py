"""
Trifle: command-line and MCP access to Trifle analytics
"""

from trifle.sdk import (
    TrifleAPIError,
    TrifleClient,
    TrifleConnectionError,
    TrifleError,
)
from trifle.version import __version__

__all__ = [
    "__version__",
    "TrifleClient",
    "TrifleError",
    "TrifleConnectionError",
    "TrifleAPIError",
]
