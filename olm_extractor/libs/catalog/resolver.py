"""
Catalog Resolver

Resolves package[:version] references against a file-based catalog image
to a concrete bundle image reference.
"""

import logging
import os
from typing import Optional

from ..core.config import RegistryConfig
from ..core.constants import CatalogConstants, ErrorMessages
from ..core.exceptions import CatalogError, ExtractorError
from ..core.utils import parse_package_reference
from ..registry.retriever import LayerSourceFactory, default_layer_source, extract_image
from .parser import CatalogIndex, Channel, FBCParser, Package

logger = logging.getLogger(__name__)


def load_catalog(directory: str, parser: Optional[FBCParser] = None) -> CatalogIndex:
    """
    Load the declarative index from an extracted catalog

    Args:
        directory: Extraction root of the catalog image
        parser: Parser to use (a new FBCParser by default)

    Returns:
        CatalogIndex loaded from <directory>/configs, or from the root if that is absent
    """
    parser = parser or FBCParser()

    configs_dir = os.path.join(directory, CatalogConstants.CONFIGS_DIR)
    if os.path.isdir(configs_dir):
        return parser.load_directory(configs_dir)

    logger.debug(f"No {CatalogConstants.CONFIGS_DIR} directory in {directory}, loading from root")
    return parser.load_directory(directory)


def find_package(index: CatalogIndex, name: str) -> Package:
    """Find a package by exact name"""
    package = index.packages.get(name)
    if package is None:
        raise CatalogError(str(ErrorMessages.CatalogError.PACKAGE_NOT_FOUND).format(package=name))
    return package


def find_channel(index: CatalogIndex, package: str, channel: str) -> Channel:
    """Find the channel of a package"""
    found = index.channels.get((package, channel))
    if found is None:
        raise CatalogError(
            str(ErrorMessages.CatalogError.CHANNEL_NOT_FOUND).format(channel=channel, package=package)
        )
    return found


def find_bundle_in_channel(channel: Channel, version: str = "") -> str:
    """
    Select a bundle entry from a channel

    With a version, the entry named exactly after it is selected.
    Without a version the first entry is used as the channel head. This is
    an approximation: replaces/skips edges are not walked.

    Args:
        channel: Channel to search
        version: Requested version (optional)

    Returns:
        str: Bundle name

    Raises:
        CatalogError: If the version is absent or the channel is empty
    """
    names = [entry.name for entry in channel.entries]

    if version:
        if version in names:
            return version
        raise CatalogError(
            str(ErrorMessages.CatalogError.VERSION_NOT_FOUND).format(
                version=version, channel=channel.name, available=', '.join(names) or 'none'
            )
        )

    if not names:
        raise CatalogError(str(ErrorMessages.CatalogError.CHANNEL_EMPTY).format(channel=channel.name))

    return names[0]


def extract_bundle_image(index: CatalogIndex, bundle_name: str) -> str:
    """Get the image reference backing a bundle entry"""
    bundle = index.bundles.get(bundle_name)
    if bundle is None:
        raise CatalogError(str(ErrorMessages.CatalogError.BUNDLE_NOT_FOUND).format(bundle=bundle_name))

    if not bundle.image:
        raise CatalogError(str(ErrorMessages.CatalogError.BUNDLE_NO_IMAGE).format(bundle=bundle_name))

    return bundle.image


def resolve_from_index(index: CatalogIndex, package_name: str, version: str = "", channel: str = "") -> str:
    """
    Resolve package, channel and version to a bundle image within a loaded index

    Args:
        index: Loaded catalog index
        package_name: Package name
        version: Optional version; channel head when empty
        channel: Optional channel; the package default channel when empty

    Returns:
        str: Bundle image reference

    Raises:
        CatalogError: If any lookup step fails
    """
    package = find_package(index, package_name)

    channel_name = channel
    if not channel_name:
        if not package.default_channel:
            raise CatalogError(
                str(ErrorMessages.CatalogError.NO_DEFAULT_CHANNEL).format(package=package_name)
            )
        channel_name = package.default_channel

    found_channel = find_channel(index, package_name, channel_name)
    bundle_name = find_bundle_in_channel(found_channel, version)
    image = extract_bundle_image(index, bundle_name)

    logger.info(f"Resolved {package_name} in channel {channel_name} to bundle {bundle_name} ({image})")
    return image


def resolve_bundle_image(
    catalog_image: str,
    package_name: str,
    version: str = "",
    channel: str = "",
    registry_config: RegistryConfig = RegistryConfig(),
    temp_dir: str = "",
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> str:
    """
    Pull a catalog image and resolve a package to its bundle image

    Only catalog layers containing /configs/ are extracted. The catalog
    extraction directory is removed before returning.

    Args:
        catalog_image: Catalog image reference (or an extracted catalog directory)
        package_name: Package name
        version: Optional version
        channel: Optional channel
        registry_config: Registry credentials and insecure flag
        temp_dir: Root for temporary directories
        layer_source_factory: Builds the registry-pull capability

    Returns:
        str: Bundle image reference
    """
    if os.path.isdir(catalog_image):
        return resolve_from_index(load_catalog(catalog_image), package_name, version, channel)

    with extract_image(
        catalog_image,
        registry_config,
        temp_dir,
        list(CatalogConstants.LAYER_PREFIXES),
        layer_source_factory
    ) as resource:
        index = load_catalog(resource.directory)

    return resolve_from_index(index, package_name, version, channel)


def resolve_bundle_source(
    source: str,
    catalog_image: str = "",
    channel: str = "",
    registry_config: RegistryConfig = RegistryConfig(),
    temp_dir: str = "",
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> str:
    """
    Determine the bundle to load

    In catalog mode the source is a package[:version] reference resolved to
    a bundle image; otherwise the source is returned unchanged.

    Args:
        source: Bundle directory/image, or package[:version] in catalog mode
        catalog_image: Catalog image reference; enables catalog mode when set
        channel: Optional channel for catalog mode
        registry_config: Registry credentials and insecure flag
        temp_dir: Root for temporary directories
        layer_source_factory: Builds the registry-pull capability

    Returns:
        str: Bundle directory or image reference

    Raises:
        CatalogError: If resolution fails
    """
    if not catalog_image:
        return source

    package_name, version = parse_package_reference(source)

    try:
        return resolve_bundle_image(
            catalog_image, package_name, version, channel, registry_config, temp_dir, layer_source_factory
        )
    except ExtractorError as e:
        raise CatalogError(str(ErrorMessages.CatalogError.RESOLVE_FAILED).format(error=e)) from e
