"""
cert-manager Integration

Self-signed Issuer generation and a convenience entry point for
cert-manager based CA injection.
"""

import logging
from typing import Any, Dict, List

from ..core.constants import CertManagerConstants
from ..extract import kube
from ..extract.templates import ManifestTemplates
from .providers import cert_manager_provider
from .provisioner import configure as configure_ca_injection

logger = logging.getLogger(__name__)


def selfsigned_issuer_name(objects: List[Dict[str, Any]]) -> str:
    """Name of the auto-generated self-signed Issuer: <operator>-selfsigned"""
    return f"{kube.operator_name(objects)}{CertManagerConstants.SELFSIGNED_SUFFIX}"


def create_issuer(name: str, namespace: str) -> Dict[str, Any]:
    """Build a self-signed cert-manager Issuer"""
    logger.debug(f"Generating self-signed Issuer {name} in {namespace}")
    return ManifestTemplates.selfsigned_issuer_template(name, namespace)


def configure(objects: List[Dict[str, Any]], namespace: str, issuer_name: str,
              issuer_kind: str = CertManagerConstants.DEFAULT_ISSUER_KIND) -> List[Dict[str, Any]]:
    """
    Configure cert-manager CA injection for webhook configurations

    Args:
        objects: Resource objects
        namespace: Target namespace
        issuer_name: Issuer referenced by generated Certificates
        issuer_kind: Issuer or ClusterIssuer

    Returns:
        Objects with Certificates, annotated webhooks and webhook Services

    Raises:
        TransformationError: If a webhook or service cannot be processed
    """
    provider = cert_manager_provider(issuer_name, issuer_kind or CertManagerConstants.DEFAULT_ISSUER_KIND)
    return configure_ca_injection(objects, namespace, provider)
