"""
Registry Libraries

Pulls bundle and catalog images from OCI registries and unpacks their layers
safely.
"""

from .client import RegistryClient
from .reference import ImageReference
from .retriever import BundleResource, LayerSourceFactory, default_layer_source, extract_image, resolve
from .tar import extract_archive

__all__ = [
    'RegistryClient',
    'ImageReference',
    'BundleResource',
    'LayerSourceFactory',
    'default_layer_source',
    'extract_image',
    'resolve',
    'extract_archive'
]
