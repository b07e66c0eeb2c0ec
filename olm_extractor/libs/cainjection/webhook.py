"""
Webhook Configuration Helpers

Reads the service linkage of validating and mutating webhook configurations.
"""

import logging
from typing import Any, Dict, NamedTuple, Optional

from ..core.constants import ErrorMessages, WebhookConstants
from ..core.exceptions import TransformationError
from ..extract import kube

logger = logging.getLogger(__name__)


class WebhookInfo(NamedTuple):
    """Service a webhook configuration calls"""
    service_name: str
    namespace: str
    port: int


def extract_webhook_info(obj: Dict[str, Any]) -> Optional[WebhookInfo]:
    """
    Extract the service reference of a webhook configuration

    Only the first webhook entry is consulted.

    Args:
        obj: ValidatingWebhookConfiguration or MutatingWebhookConfiguration

    Returns:
        WebhookInfo, or None when the object is not a webhook configuration
        or its first entry uses a URL instead of a service

    Raises:
        TransformationError: If the service port is not a number
    """
    if not kube.is_webhook_configuration(obj):
        return None

    webhooks = obj.get('webhooks')
    if not isinstance(webhooks, list) or not webhooks or not isinstance(webhooks[0], dict):
        return None

    service = (webhooks[0].get('clientConfig') or {}).get('service')
    if not isinstance(service, dict) or not service.get('name'):
        logger.debug(f"Webhook configuration {kube.get_name(obj)} does not reference a service")
        return None

    port = service.get('port') or WebhookConstants.DEFAULT_PORT
    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        error = str(ErrorMessages.ExtractError.INVALID_WEBHOOK_PORT).format(port=port)
        raise TransformationError(
            str(ErrorMessages.ExtractError.CONFIGURE_WEBHOOK_FAILED).format(webhook=kube.get_name(obj), error=error)
        ) from e

    return WebhookInfo(
        service_name=service['name'],
        namespace=service.get('namespace') or "",
        port=port
    )
