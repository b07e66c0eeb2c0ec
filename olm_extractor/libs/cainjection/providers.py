"""
CA Providers

Strategies that make a webhook configuration receive a CA bundle from an
in-cluster controller. Each provider returns the objects to emit for one
webhook: supporting objects (Certificate, ConfigMap) followed by the
annotated webhook configuration.
"""

import copy
from typing import Any, Callable, Dict, List, NamedTuple

from ..core.constants import (
    CAProviderName,
    CertManagerConstants,
    ErrorMessages,
    OpenShiftConstants,
    WebhookConstants,
)
from ..core.exceptions import ConfigurationError
from ..extract import kube
from ..extract.templates import ManifestTemplates

ConfigureWebhook = Callable[[Dict[str, Any], str, str], List[Dict[str, Any]]]


class CAProvider(NamedTuple):
    """CA injection strategy"""
    name: str
    configure_webhook: ConfigureWebhook


def certificate_name(service_name: str) -> str:
    return f"{service_name}{WebhookConstants.CERT_SUFFIX}"


def cert_manager_provider(issuer_name: str,
                          issuer_kind: str = CertManagerConstants.DEFAULT_ISSUER_KIND) -> CAProvider:
    """
    Build the cert-manager provider

    Emits a Certificate for the webhook service and annotates the webhook
    with cert-manager.io/inject-ca-from: <namespace>/<certificate>.

    Args:
        issuer_name: Issuer referenced by generated Certificates
        issuer_kind: Issuer or ClusterIssuer
    """
    def configure_webhook(webhook: Dict[str, Any], service_name: str, namespace: str) -> List[Dict[str, Any]]:
        cert_name = certificate_name(service_name)
        certificate = ManifestTemplates.certificate_template(
            cert_name, namespace, service_name, issuer_name, issuer_kind
        )
        annotated = kube.set_annotation(
            copy.deepcopy(webhook), CertManagerConstants.INJECT_CA_ANNOTATION, f"{namespace}/{cert_name}"
        )
        return [certificate, annotated]

    return CAProvider(name=str(CAProviderName.CERT_MANAGER), configure_webhook=configure_webhook)


def openshift_provider() -> CAProvider:
    """
    Build the OpenShift service CA provider

    Emits a "<service>-ca" ConfigMap the service CA operator fills with its
    bundle, and annotates the webhook to receive that bundle.
    """
    def configure_webhook(webhook: Dict[str, Any], service_name: str, namespace: str) -> List[Dict[str, Any]]:
        config_map_name = f"{service_name}{OpenShiftConstants.CA_CONFIGMAP_SUFFIX}"
        config_map = ManifestTemplates.ca_bundle_config_map_template(config_map_name, namespace)

        annotated = copy.deepcopy(webhook)
        kube.set_annotation(annotated, OpenShiftConstants.INJECT_CABUNDLE_ANNOTATION, "true")
        kube.set_annotation(annotated, OpenShiftConstants.INJECT_CABUNDLE_FROM_ANNOTATION,
                            f"{namespace}/{config_map_name}")
        return [config_map, annotated]

    return CAProvider(name=str(CAProviderName.OPENSHIFT), configure_webhook=configure_webhook)


def get_provider(name: str, issuer_name: str = "",
                 issuer_kind: str = CertManagerConstants.DEFAULT_ISSUER_KIND) -> CAProvider:
    """
    Select a CA provider by name

    Args:
        name: Provider name (cert-manager or openshift)
        issuer_name: Issuer for the cert-manager provider
        issuer_kind: Issuer kind for the cert-manager provider

    Returns:
        CAProvider

    Raises:
        ConfigurationError: If the provider name is unknown
    """
    if name == CAProviderName.CERT_MANAGER:
        return cert_manager_provider(issuer_name, issuer_kind or CertManagerConstants.DEFAULT_ISSUER_KIND)
    if name == CAProviderName.OPENSHIFT:
        return openshift_provider()

    raise ConfigurationError(str(ErrorMessages.ConfigError.UNKNOWN_CA_PROVIDER).format(
        provider=name, choices=', '.join(str(p) for p in CAProviderName)
    ))
