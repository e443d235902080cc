"""
Trifle SDK public exports.
"""

from trifle.sdk.client import TrifleClient, query_data
from trifle.sdk.errors import TrifleAPIError, TrifleConnectionError, TrifleError

__all__ = [
    "TrifleClient",
    "query_data",
    "TrifleError",
    "TrifleConnectionError",
    "TrifleAPIError",
]
