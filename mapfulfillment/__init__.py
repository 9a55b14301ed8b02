# mapfulfillment/__init__.py
"""
Map Fulfillment Package.
"""

from mapfulfillment.__version__ import (
    __author__,
    __description__,
    __email__,
    __license__,
    __version__,
    __version_info__,
)

__all__ = [
    "__version__",
    "__version_info__",
    "__author__",
    "__email__",
    "__license__",
    "__description__",
]
