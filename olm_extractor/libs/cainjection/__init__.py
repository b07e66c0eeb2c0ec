"""
CA Injection Libraries

Provisions certificates, CA bundles and backing Services for webhook
configurations.
"""

from .certmanager import create_issuer, selfsigned_issuer_name
from .providers import CAProvider, cert_manager_provider, get_provider, openshift_provider
from .provisioner import configure

__all__ = [
    'CAProvider',
    'cert_manager_provider',
    'openshift_provider',
    'get_provider',
    'configure',
    'create_issuer',
    'selfsigned_issuer_name'
]
