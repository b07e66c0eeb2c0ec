"""
Protocols and Interfaces

Defines protocols (interfaces) for the pluggable capabilities of the
extraction pipeline, used for dependency injection and type hints.
"""

import tarfile
from typing import Any, Callable, ContextManager, Dict, List, Optional, Protocol

from .auth import RegistryCredentials


class Keychain(Protocol):
    """Protocol for registry credential sources"""

    def resolve(self, registry: str) -> Optional[RegistryCredentials]:
        """Return credentials for a registry host, or None for anonymous access"""
        ...


class LayerSource(Protocol):
    """Protocol for the registry-pull capability used by the image retriever"""

    def layers(self, image: Any) -> List[Dict[str, Any]]:
        """List layer descriptors of an image, oldest first"""
        ...

    def open_layer(self, image: Any, descriptor: Dict[str, Any]) -> ContextManager[tarfile.TarFile]:
        """Open a layer as a tar archive"""
        ...

    def close(self) -> None:
        """Release network resources"""
        ...


# Predicate evaluated against a resource object by the resource filter
ObjectPredicate = Callable[[Dict[str, Any]], Any]


class ConfigProvider(Protocol):
    """Protocol for configuration providers"""

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        ...

    def build_settings(self, cli_settings: Dict[str, Any],
                       environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Merge flags, environment and config file settings"""
        ...

    def generate_config_template(self, output_path: Optional[str] = None) -> str:
        """Generate configuration template file"""
        ...


class HelpProvider(Protocol):
    """Protocol for help providers"""

    def show_help(self, command: Optional[str] = None) -> None:
        """Show help for command or main help if no command specified"""
        ...
