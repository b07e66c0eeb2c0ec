"""
Bundle Loader

Parses an operator bundle (manifests/ plus metadata/annotations.yaml) from
a directory or a bundle image into its ClusterServiceVersion, CRDs and
remaining objects.
"""

import logging
import os
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import yaml

from ..core.config import RegistryConfig
from ..core.constants import KubernetesConstants, OLMConstants
from ..core.exceptions import BundleLoadError, ExtractorError
from ..registry.retriever import LayerSourceFactory, default_layer_source, resolve

logger = logging.getLogger(__name__)

MANIFEST_EXTENSIONS = ('.yaml', '.yml', '.json')


class Bundle(NamedTuple):
    """Contents of an operator bundle"""
    csv: Dict[str, Any]
    crds: List[Dict[str, Any]]
    objects: List[Dict[str, Any]]
    annotations: Dict[str, str]

    @property
    def name(self) -> str:
        """Name of the ClusterServiceVersion"""
        return (self.csv.get('metadata') or {}).get('name', "")

    @property
    def package(self) -> str:
        """Package name from metadata/annotations.yaml"""
        return self.annotations.get(OLMConstants.BundleAnnotation.PACKAGE, "")


def _read_documents(path: str) -> List[Dict[str, Any]]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            documents = list(yaml.safe_load_all(f))
    except (OSError, UnicodeDecodeError) as e:
        raise BundleLoadError(f"failed to read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise BundleLoadError(f"failed to parse {path}: {e}") from e

    objects = []
    for document in documents:
        if not document:
            continue
        if not isinstance(document, dict) or not document.get('kind'):
            logger.warning(f"Skipping document without kind in {path}")
            continue
        objects.append(document)
    return objects


def read_annotations(directory: str) -> Dict[str, str]:
    """
    Read metadata/annotations.yaml of a bundle

    Args:
        directory: Bundle root

    Returns:
        Annotation map, empty when the file does not exist
    """
    path = os.path.join(directory, OLMConstants.BUNDLE_METADATA_DIR, OLMConstants.BUNDLE_ANNOTATIONS_FILE)
    if not os.path.isfile(path):
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise BundleLoadError(f"failed to read bundle annotations {path}: {e}") from e

    annotations = content.get('annotations') if isinstance(content, dict) else None
    return {str(k): str(v) for k, v in (annotations or {}).items()}


def load_bundle_directory(directory: str) -> Bundle:
    """
    Load a bundle from an unpacked directory

    Args:
        directory: Bundle root containing manifests/ (or the manifests themselves)

    Returns:
        Bundle

    Raises:
        BundleLoadError: If manifests are unreadable or the bundle has no single CSV
    """
    manifests_dir = os.path.join(directory, OLMConstants.BUNDLE_MANIFESTS_DIR)
    if not os.path.isdir(manifests_dir):
        manifests_dir = directory

    objects: List[Dict[str, Any]] = []
    for filename in sorted(os.listdir(manifests_dir)):
        path = os.path.join(manifests_dir, filename)
        if os.path.isfile(path) and filename.lower().endswith(MANIFEST_EXTENSIONS):
            objects.extend(_read_documents(path))

    csvs, crds, others = _partition(objects)

    if not csvs:
        raise BundleLoadError(f"no ClusterServiceVersion found in {manifests_dir}")
    if len(csvs) > 1:
        names = ', '.join((csv.get('metadata') or {}).get('name', '?') for csv in csvs)
        raise BundleLoadError(f"multiple ClusterServiceVersions found in {manifests_dir}: {names}")

    bundle = Bundle(csv=csvs[0], crds=crds, objects=others, annotations=read_annotations(directory))
    logger.info(f"Loaded bundle {bundle.name} with {len(crds)} CRDs and {len(others)} other objects")
    return bundle


def _partition(objects: List[Dict[str, Any]]) -> Tuple[List[Dict], List[Dict], List[Dict]]:
    csvs, crds, others = [], [], []
    for obj in objects:
        kind = obj.get('kind')
        if kind == KubernetesConstants.Kind.CSV:
            csvs.append(obj)
        elif kind == KubernetesConstants.Kind.CRD:
            crds.append(obj)
        else:
            others.append(obj)
    return csvs, crds, others


def load_bundle(
    source: str,
    registry_config: Optional[RegistryConfig] = None,
    temp_dir: str = "",
    layer_source_factory: LayerSourceFactory = default_layer_source
) -> Bundle:
    """
    Load a bundle from a directory path or container image reference

    Temporary files created for image references are removed before
    returning, whether loading succeeds or fails.

    Args:
        source: Bundle directory or image reference
        registry_config: Registry credentials and insecure flag
        temp_dir: Root for temporary directories
        layer_source_factory: Builds the registry-pull capability

    Returns:
        Bundle

    Raises:
        BundleLoadError: If the bundle cannot be retrieved or parsed
    """
    try:
        with resolve(source, registry_config or RegistryConfig(), temp_dir,
                     layer_source_factory=layer_source_factory) as resource:
            return load_bundle_directory(resource.directory)
    except ExtractorError as e:
        raise BundleLoadError(f"failed to load bundle: {e}") from e
