"""
Webhook Service Helpers

Finds, corrects or synthesizes the Service backing a webhook.
"""

import copy
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from ..core.constants import KubernetesConstants, WebhookConstants
from ..extract import kube
from ..extract.templates import ManifestTemplates

logger = logging.getLogger(__name__)

Kind = KubernetesConstants.Kind


class DeploymentInfo(NamedTuple):
    """Port and selector of the deployment serving a webhook"""
    port: int
    selector: Optional[Dict[str, str]] = None


def deployment_name_for_service(service_name: str) -> str:
    """Strip the webhook service suffix to recover the deployment name"""
    suffix = WebhookConstants.SERVICE_SUFFIX
    if len(service_name) > len(suffix) and service_name.endswith(suffix):
        return service_name[:-len(suffix)]
    return service_name


def find_deployment_info(objects: List[Dict[str, Any]], service_name: str, default_port: int) -> DeploymentInfo:
    """
    Find the target port and selector of the deployment behind a service

    Args:
        objects: Resource objects
        service_name: Webhook service name (<deployment>-webhook-service)
        default_port: Port used when the deployment declares none

    Returns:
        DeploymentInfo; selector is None when the deployment is not found
    """
    deployment = kube.find_first(objects, Kind.DEPLOYMENT, deployment_name_for_service(service_name))
    if deployment is None:
        return DeploymentInfo(port=default_port)

    spec = deployment.get('spec') or {}
    selector = (spec.get('selector') or {}).get('matchLabels')

    port = default_port
    containers = ((spec.get('template') or {}).get('spec') or {}).get('containers') or []
    if containers:
        ports = containers[0].get('ports') or []
        if ports and ports[0].get('containerPort'):
            port = ports[0]['containerPort']

    return DeploymentInfo(port=port, selector=dict(selector) if selector else None)


def update_service_port(service: Dict[str, Any], expected_port: int) -> Dict[str, Any]:
    """
    Make the first port of a Service match the webhook port

    A Service without ports gets one. Selector and other fields are left
    untouched.

    Args:
        service: Existing Service
        expected_port: Port the webhook calls

    Returns:
        Updated copy of the Service
    """
    service = copy.deepcopy(service)
    spec = service.setdefault('spec', {})
    ports = spec.get('ports') or []

    if not ports:
        spec['ports'] = [ManifestTemplates.webhook_port_template(expected_port)]
        logger.debug(f"Added port {expected_port} to service {kube.get_name(service)}")
    elif ports[0].get('port') != expected_port:
        logger.debug(f"Correcting port of service {kube.get_name(service)} "
                     f"from {ports[0].get('port')} to {expected_port}")
        ports[0]['port'] = expected_port

    return service


def create_service(service_name: str, namespace: str, port: int, target_port: int,
                   selector: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Create a webhook Service, deriving a selector from the name when none is given"""
    if not selector:
        selector = {KubernetesConstants.NAME_LABEL: deployment_name_for_service(service_name)}
    return ManifestTemplates.webhook_service_template(service_name, namespace, port, target_port, selector)


def ensure_service(objects: List[Dict[str, Any]], service_name: str, namespace: str,
                   port: int) -> Dict[str, Any]:
    """
    Return the Service a webhook needs, reusing an existing one when present

    Args:
        objects: Resource objects
        service_name: Webhook service name
        namespace: Target namespace
        port: Port the webhook calls

    Returns:
        The existing Service (port corrected) or a newly synthesized one
    """
    existing = kube.find_first(objects, Kind.SERVICE, service_name)
    if existing is not None:
        return update_service_port(existing, port)

    info = find_deployment_info(objects, service_name, port)
    logger.debug(f"Synthesizing service {service_name} targeting port {info.port}")
    return create_service(service_name, namespace, port, info.port, info.selector)
