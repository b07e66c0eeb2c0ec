"""
Image Retriever

Resolves a bundle or catalog input to on-disk content: either an existing
local directory or a container image pulled and extracted into a private
temporary directory.
"""

import logging
import os
import shutil
import tempfile
from contextlib import closing
from typing import Any, Callable, Dict, List, Optional

from ..core.auth import build_keychain
from ..core.config import RegistryConfig
from ..core.constants import ErrorMessages, RegistryConstants
from ..core.exceptions import AuthenticationError, ExtractionError, NetworkError, RegistryError
from ..core.protocols import LayerSource
from .client import RegistryClient
from .reference import ImageReference
from .tar import extract_archive, has_all_required_content, layer_contains_relevant_paths

logger = logging.getLogger(__name__)

LayerSourceFactory = Callable[[RegistryConfig], LayerSource]


class BundleResource:
    """
    Extracted content owned by a single pipeline run.

    ``cleanup`` removes the temporary directory, if this resource created
    one. It is idempotent and safe on a partially constructed resource.
    """

    def __init__(self, directory: str = "", tmp_dir: str = ""):
        self.directory = directory
        self.tmp_dir = tmp_dir

    def cleanup(self) -> None:
        """Remove the temporary directory, if any"""
        if self.tmp_dir:
            shutil.rmtree(self.tmp_dir, ignore_errors=True)
            logger.debug(f"Removed temporary directory {self.tmp_dir}")
            self.tmp_dir = ""

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.cleanup()


def default_layer_source(registry_config: RegistryConfig) -> LayerSource:
    """
    Build the registry client for a registry configuration

    Args:
        registry_config: Registry credentials and insecure flag

    Returns:
        RegistryClient using explicit or default credentials
    """
    keychain = build_keychain(registry_config.username, registry_config.password)
    return RegistryClient(keychain, insecure=registry_config.insecure)


def _pull_error(image_ref: str, error: Exception, registry_config: RegistryConfig) -> str:
    message = str(ErrorMessages.RegistryError.PULL_FAILED).format(image=image_ref, error=error)
    if not registry_config.username and not registry_config.password:
        message += f"\n{RegistryConstants.LOGIN_HINT}"
    return message


def resolve(
    source: str,
    registry_config: RegistryConfig,
    temp_dir: str = "",
    prefixes: Optional[List[str]] = None,
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> BundleResource:
    """
    Resolve a directory path or image reference to extracted content

    Args:
        source: Local directory or container image reference
        registry_config: Registry credentials and insecure flag
        temp_dir: Root for temporary directories (system default when empty)
        prefixes: Only extract layers containing these paths
        layer_source_factory: Builds the registry-pull capability

    Returns:
        BundleResource; directories are returned as-is with a no-op cleanup
    """
    if os.path.isdir(source):
        logger.debug(f"Using local directory {source}")
        return BundleResource(directory=source)

    return extract_image(source, registry_config, temp_dir, prefixes, layer_source_factory)


def extract_image(
    image_ref: str,
    registry_config: RegistryConfig,
    temp_dir: str = "",
    prefixes: Optional[List[str]] = None,
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> BundleResource:
    """
    Pull a container image and extract it into a new temporary directory

    The temporary directory is removed before any error propagates.

    Args:
        image_ref: Container image reference
        registry_config: Registry credentials and insecure flag
        temp_dir: Root for the temporary directory (system default when empty)
        prefixes: Only extract layers containing these paths
        layer_source_factory: Builds the registry-pull capability

    Returns:
        BundleResource owning the temporary directory

    Raises:
        RegistryError: If the image cannot be pulled
        ExtractionError: If layers cannot be extracted safely or none match the prefixes
    """
    try:
        tmp_dir = tempfile.mkdtemp(prefix=RegistryConstants.TEMP_DIR_PREFIX, dir=temp_dir or None)
    except OSError as e:
        raise ExtractionError(f"failed to create temp directory: {e}") from e

    resource = BundleResource(directory=tmp_dir, tmp_dir=tmp_dir)

    try:
        image = ImageReference.parse(image_ref)
        logger.info(f"Pulling image {image}")

        with closing(layer_source_factory(registry_config)) as layer_source:
            try:
                layers = layer_source.layers(image)
            except (AuthenticationError, NetworkError, RegistryError) as e:
                raise RegistryError(_pull_error(image_ref, e, registry_config)) from e

            try:
                if prefixes:
                    _extract_relevant_layers(layer_source, image, layers, tmp_dir, prefixes)
                else:
                    _extract_all_layers(layer_source, image, layers, tmp_dir)
            except (AuthenticationError, NetworkError, RegistryError) as e:
                raise RegistryError(_pull_error(image_ref, e, registry_config)) from e
    except BaseException:
        resource.cleanup()
        raise

    return resource


def _extract_all_layers(
    layer_source: LayerSource,
    image: ImageReference,
    layers: List[Dict[str, Any]],
    target_dir: str
) -> None:
    """Extract every layer, oldest first"""
    for layer in layers:
        with layer_source.open_layer(image, layer) as archive:
            count = extract_archive(archive, target_dir)
        logger.debug(f"Extracted {count} entries from layer {layer.get('digest')}")


def _extract_relevant_layers(
    layer_source: LayerSource,
    image: ImageReference,
    layers: List[Dict[str, Any]],
    target_dir: str,
    prefixes: List[str]
) -> None:
    """
    Extract only the layers that contain the requested paths

    Layers are scanned newest first so that the most recent content wins,
    and scanning stops once every prefix exists on disk.

    Raises:
        ExtractionError: If no layer contains any of the prefixes
    """
    extracted = 0

    for layer in reversed(layers):
        with layer_source.open_layer(image, layer) as archive:
            if not layer_contains_relevant_paths(archive, prefixes):
                logger.debug(f"Skipping layer {layer.get('digest')}: no relevant paths")
                continue
            extract_archive(archive, target_dir)

        extracted += 1
        logger.debug(f"Extracted layer {layer.get('digest')}")

        if has_all_required_content(target_dir, prefixes):
            break

    if extracted == 0:
        raise ExtractionError(
            str(ErrorMessages.RegistryError.NO_MATCHING_LAYERS).format(prefixes=prefixes)
        )
