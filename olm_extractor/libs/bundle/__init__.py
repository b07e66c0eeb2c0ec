"""
Bundle Libraries

Loads operator bundles from directories and images.
"""

from .loader import Bundle, load_bundle, load_bundle_directory

__all__ = [
    'Bundle',
    'load_bundle',
    'load_bundle_directory'
]
