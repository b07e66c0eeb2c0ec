"""
Catalog Libraries

Parses file-based catalogs and resolves package references to bundle images.
"""

from .parser import BundleEntry, CatalogIndex, Channel, ChannelEntry, FBCParser, Package
from .resolver import load_catalog, resolve_bundle_image, resolve_bundle_source, resolve_from_index

__all__ = [
    'FBCParser',
    'CatalogIndex',
    'Package',
    'Channel',
    'ChannelEntry',
    'BundleEntry',
    'load_catalog',
    'resolve_from_index',
    'resolve_bundle_image',
    'resolve_bundle_source'
]
