"""
Version information for the map fulfillment pipeline.

The version follows semantic versioning: MAJOR.MINOR.PATCH

- MAJOR: Incompatible API changes
- MINOR: Add functionality in a backward compatible manner
- PATCH: Backward compatible bug fixes
"""

__version__ = "1.2.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Additional version metadata
__author__ = "Print My Ride"
__email__ = "dev@printmyride.com"
__license__ = "MIT"
__description__ = "Order-time map configuration resolution and print generation"
