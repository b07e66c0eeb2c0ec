"""
Certificate Provisioner

Makes webhook configurations admission-ready: each webhook gets CA
injection through a provider, and its backing Service is corrected or
synthesized. Certificates and Services are emitted at most once per name
across the whole object set.
"""

import logging
from typing import Any, Dict, List, Set

from ..core.constants import ErrorMessages, KubernetesConstants
from ..core.exceptions import TransformationError
from ..extract import kube
from .providers import CAProvider
from .service import ensure_service
from .webhook import extract_webhook_info

logger = logging.getLogger(__name__)

Kind = KubernetesConstants.Kind

# Provider-emitted kinds that are de-duplicated by name
SUPPORTING_KINDS = (Kind.CERTIFICATE, Kind.CONFIG_MAP)

# Malformed object trees surface as these while being read or rewritten
CONVERSION_ERRORS = (AttributeError, KeyError, TypeError, ValueError, IndexError)


def configure(objects: List[Dict[str, Any]], namespace: str, provider: CAProvider) -> List[Dict[str, Any]]:
    """
    Configure CA injection for every webhook configuration

    The webhook configurations are processed first, each followed by its
    supporting objects and Service; every other object follows in its
    original order. Services already handled for a webhook are not repeated.

    Args:
        objects: Filtered resource objects
        namespace: Target namespace
        provider: CA injection strategy

    Returns:
        New object list; the input is returned unchanged when no webhook
        configuration references a service

    Raises:
        TransformationError: If any webhook or service cannot be processed
    """
    if not any(extract_webhook_info(obj) for obj in objects):
        logger.debug("No service-backed webhook configurations found, skipping CA injection")
        return objects

    result: List[Dict[str, Any]] = []
    processed_services: Set[str] = set()
    # Certificates and CA ConfigMaps shipped with the input count as already emitted
    added_certificates: Set[str] = {
        kube.get_name(obj) for obj in objects if kube.get_kind(obj) in SUPPORTING_KINDS
    }

    for obj in objects:
        if not kube.is_webhook_configuration(obj):
            continue

        info = extract_webhook_info(obj)
        if info is None:
            result.append(obj)
            continue

        name = kube.get_name(obj)

        try:
            emitted = provider.configure_webhook(obj, info.service_name, namespace)
        except CONVERSION_ERRORS as e:
            raise TransformationError(
                str(ErrorMessages.ExtractError.CONFIGURE_WEBHOOK_FAILED).format(webhook=name, error=e)
            ) from e

        for resource in emitted:
            if kube.get_kind(resource) in SUPPORTING_KINDS:
                resource_name = kube.get_name(resource)
                if resource_name in added_certificates:
                    continue
                added_certificates.add(resource_name)
            result.append(resource)

        if info.service_name in processed_services:
            continue

        try:
            service = ensure_service(objects, info.service_name, namespace, info.port)
        except CONVERSION_ERRORS as e:
            raise TransformationError(
                str(ErrorMessages.ExtractError.ENSURE_SERVICE_FAILED).format(
                    service=info.service_name, webhook=name, error=e
                )
            ) from e

        processed_services.add(info.service_name)
        result.append(service)

    for obj in objects:
        if kube.is_webhook_configuration(obj):
            continue
        if kube.is_kind(obj, Kind.SERVICE) and kube.get_name(obj) in processed_services:
            continue
        result.append(obj)

    logger.info(f"Configured CA injection with {provider.name} for {len(processed_services)} webhook services")
    return result
