"""
Extraction Pipeline

Runs one extraction end to end: namespace validation, bundle source
resolution, bundle loading, manifest extraction and transformations.
Each stage failure is re-raised with the stage it happened in.
"""

import logging
import os
from typing import Any, Dict, List

from .bundle.loader import load_bundle
from .catalog.resolver import resolve_bundle_source
from .core.config import ExtractorConfig
from .core.constants import RegistryConstants
from .core.exceptions import (
    CatalogError,
    ConfigurationError,
    ExtractionError,
    ExtractorError,
    TransformationError,
)
from .core.utils import validate_namespace
from .extract.transform import apply_transformations, extract_manifests
from .registry.retriever import LayerSourceFactory, default_layer_source

logger = logging.getLogger(__name__)


def prepare_temp_dir(temp_dir: str) -> None:
    """
    Create the temporary directory root if it does not exist

    Raises:
        ConfigurationError: If the directory cannot be created
    """
    if not temp_dir:
        return
    try:
        os.makedirs(temp_dir, mode=RegistryConstants.DIR_PERMISSIONS, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"failed to create temp-dir: {e}") from e


def run_pipeline(
    source: str,
    config: ExtractorConfig,
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> List[Dict[str, Any]]:
    """
    Extract installable objects for a bundle source

    Args:
        source: Bundle directory, bundle image, or package[:version] in catalog mode
        config: Run configuration
        layer_source_factory: Builds the registry-pull capability

    Returns:
        Objects in apply order

    Raises:
        ExtractorError: With a message naming the failed stage
    """
    try:
        validate_namespace(config.namespace)
    except ConfigurationError as e:
        raise ConfigurationError(f"invalid namespace: {e}") from e

    prepare_temp_dir(config.temp_dir)

    # Step 1: Resolve bundle source
    try:
        bundle_source = resolve_bundle_source(
            source,
            config.catalog,
            config.channel,
            config.registry,
            config.temp_dir,
            layer_source_factory
        )
    except ExtractorError as e:
        raise CatalogError(f"failed to resolve bundle source: {e}") from e

    # Step 2: Load bundle; errors already name the stage
    bundle = load_bundle(bundle_source, config.registry, config.temp_dir, layer_source_factory)

    # Step 3: Extract manifests
    try:
        objects = extract_manifests(bundle, config.namespace)
    except ExtractorError as e:
        raise ExtractionError(f"failed to extract manifests: {e}") from e

    # Step 4: Apply transformations
    try:
        objects = apply_transformations(
            objects,
            config.namespace,
            list(config.include),
            list(config.exclude),
            config.cert_manager
        )
    except ExtractorError as e:
        raise TransformationError(f"failed to apply transformations: {e}") from e

    logger.info(f"Extracted {len(objects)} objects from {source}")
    return objects
