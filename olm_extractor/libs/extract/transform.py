"""
Pipeline Stages

Composes synthesis, normalization, filtering, CA injection and sorting
into the two stages shared by the command line and the KRM function.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..bundle.loader import Bundle
from ..cainjection.certmanager import create_issuer, selfsigned_issuer_name
from ..cainjection.providers import get_provider
from ..cainjection.provisioner import configure
from ..core.config import CertManagerConfig
from ..core.constants import CAProviderName, CertManagerConstants
from .filter import Expression, ResourceFilter
from .kube import sort_for_apply
from .normalize import normalize_names
from .synthesizer import synthesize

logger = logging.getLogger(__name__)


def extract_manifests(bundle: Bundle, namespace: str) -> List[Dict[str, Any]]:
    """
    Synthesize, normalize and sort the objects of a bundle

    Args:
        bundle: Loaded bundle
        namespace: Target namespace

    Returns:
        Objects in apply order

    Raises:
        ExtractionError: If the bundle cannot be converted
    """
    objects = synthesize(bundle, namespace)
    objects = normalize_names(objects)
    return sort_for_apply(objects)


def apply_transformations(
    objects: List[Dict[str, Any]],
    namespace: str,
    include: Optional[Sequence[Expression]] = None,
    exclude: Optional[Sequence[Expression]] = None,
    cert_manager: Optional[CertManagerConfig] = None
) -> List[Dict[str, Any]]:
    """
    Filter objects, configure CA injection and restore apply order

    With cert-manager and no explicit issuer, a self-signed Issuer named
    "<operator>-selfsigned" is generated and referenced.

    Args:
        objects: Extracted objects
        namespace: Target namespace
        include: Expressions selecting objects to keep
        exclude: Expressions selecting objects to drop
        cert_manager: CA injection settings; injection is skipped when disabled

    Returns:
        Transformed objects in apply order

    Raises:
        FilterError: If a filter expression is invalid
        ConfigurationError: If the CA provider is unknown
        TransformationError: If CA injection fails
    """
    cert_manager = cert_manager or CertManagerConfig()
    objects = ResourceFilter(include, exclude).apply(objects)

    if cert_manager.enabled:
        objects = _inject_ca(objects, namespace, cert_manager)

    return sort_for_apply(objects)


def _inject_ca(objects: List[Dict[str, Any]], namespace: str,
               cert_manager: CertManagerConfig) -> List[Dict[str, Any]]:
    if cert_manager.provider != CAProviderName.CERT_MANAGER:
        return configure(objects, namespace, get_provider(cert_manager.provider))

    issuer_name = cert_manager.issuer_name
    issuer_kind = cert_manager.issuer_kind or CertManagerConstants.DEFAULT_ISSUER_KIND
    generated_issuer = None

    if not issuer_name:
        issuer_name = selfsigned_issuer_name(objects)
        issuer_kind = CertManagerConstants.DEFAULT_ISSUER_KIND
        generated_issuer = create_issuer(issuer_name, namespace)

    configured = configure(objects, namespace, get_provider(cert_manager.provider, issuer_name, issuer_kind))

    # Only add the Issuer when a Certificate actually references it
    if generated_issuer is not None and configured is not objects:
        configured.append(generated_issuer)
        logger.info(f"Generated self-signed Issuer {issuer_name}")

    return configured
