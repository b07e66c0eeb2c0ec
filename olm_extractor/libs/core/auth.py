"""
Registry Authentication Module

Resolves container registry credentials, either from explicit static
credentials or from the standard Docker/Podman configuration files and
credential helpers.
"""

import base64
import binascii
import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from .constants import RegistryConstants

logger = logging.getLogger(__name__)


class RegistryCredentials(NamedTuple):
    """Username/password pair used for registry basic or token auth"""
    username: str
    password: str


class StaticKeychain:
    """Keychain returning the same explicit credentials for every registry"""

    def __init__(self, username: str, password: str):
        self.credentials = RegistryCredentials(username, password)

    def resolve(self, registry: str) -> Optional[RegistryCredentials]:
        return self.credentials


class DefaultKeychain:
    """
    Keychain backed by Docker/Podman auth files and credential helpers.

    For each registry the files are searched in priority order. Within a file
    a registry-specific credential helper wins over an inline ``auths`` entry,
    which wins over the global ``credsStore`` helper.
    """

    def __init__(self, auth_files: Optional[List[Path]] = None):
        """
        Initialize the default keychain

        Args:
            auth_files: Explicit list of auth files to search (defaults to standard locations)
        """
        self.auth_files = auth_files if auth_files is not None else get_auth_file_locations()

    def resolve(self, registry: str) -> Optional[RegistryCredentials]:
        """
        Resolve credentials for a registry host

        Args:
            registry: Registry hostname (e.g. "quay.io", "docker.io")

        Returns:
            RegistryCredentials if found, None for anonymous access
        """
        logger.debug(f"Searching for authentication for registry: {registry}")

        for auth_path in self.auth_files:
            if not auth_path.exists():
                continue
            try:
                with open(auth_path, 'r') as f:
                    auth_data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.debug(f"Could not read auth file {auth_path}: {e}")
                continue

            if not isinstance(auth_data, dict):
                continue

            credentials = self._resolve_from_config(auth_data, registry, auth_path)
            if credentials:
                return credentials

        logger.debug(f"No authentication found for registry: {registry}")
        return None

    def _resolve_from_config(
        self, auth_data: Dict, registry: str, auth_path: Path
    ) -> Optional[RegistryCredentials]:
        """
        Look up a registry inside one parsed auth file

        Args:
            auth_data: Parsed auth file contents
            registry: Registry hostname
            auth_path: Path of the file (for logging)

        Returns:
            RegistryCredentials if this file provides credentials
        """
        # Legacy ~/.dockercfg has the auths map at the top level
        if 'auths' in auth_data:
            auths = auth_data['auths']
        elif auth_path.name == '.dockercfg':
            auths = auth_data
        else:
            auths = {}
        if not isinstance(auths, dict):
            auths = {}

        for helper_registry, helper in (auth_data.get('credHelpers') or {}).items():
            if is_registry_match(registry, helper_registry):
                credentials = run_credential_helper(helper, helper_registry)
                if credentials:
                    logger.debug(f"Using credential helper {helper} for {registry}")
                    return credentials

        for auth_registry, auth_entry in auths.items():
            if not isinstance(auth_entry, dict) or not is_registry_match(registry, auth_registry):
                continue
            credentials = decode_auth_entry(auth_entry)
            if credentials:
                logger.debug(f"Found credentials for {registry} in {auth_path}")
                return credentials

        creds_store = auth_data.get('credsStore')
        if creds_store:
            credentials = run_credential_helper(creds_store, registry)
            if credentials:
                logger.debug(f"Using credential store {creds_store} for {registry}")
                return credentials

        return None


def get_auth_file_locations() -> List[Path]:
    """
    Get standard locations for Docker/Podman authentication files

    Returns:
        List of Path objects to check for auth files, highest priority first
    """
    home = Path.home()
    locations = [
        home / '.docker' / 'config.json',
        home / '.dockercfg',
        home / '.config' / 'containers' / 'auth.json',
        Path('/etc/containers/auth.json'),
        Path('/run/containers/0/auth.json'),
    ]

    xdg_runtime_dir = os.getenv('XDG_RUNTIME_DIR')
    if xdg_runtime_dir:
        locations.append(Path(xdg_runtime_dir) / 'containers' / 'auth.json')

    # Environment variable override
    registry_auth_file = os.getenv('REGISTRY_AUTH_FILE')
    if registry_auth_file:
        locations.insert(0, Path(registry_auth_file))

    return locations


def extract_registry_from_image(image: str) -> str:
    """
    Extract registry hostname from container image reference

    Args:
        image: Container image reference

    Returns:
        Registry hostname, "docker.io" when the reference has none
    """
    if '/' not in image:
        return RegistryConstants.DEFAULT_REGISTRY

    first_part = image.split('/')[0]
    if '.' in first_part or ':' in first_part or first_part == 'localhost':
        return first_part

    return RegistryConstants.DEFAULT_REGISTRY


def _normalize_registry(registry: str) -> str:
    """Strip scheme and path from an auth file key"""
    host = registry.split('://', 1)[-1]
    return host.split('/', 1)[0]


def is_registry_match(target_registry: str, auth_registry: str) -> bool:
    """
    Check if two registry hostnames match

    Args:
        target_registry: The registry we're looking for auth
        auth_registry: The registry key in the auth file

    Returns:
        bool: True if they match
    """
    target = _normalize_registry(target_registry)
    candidate = _normalize_registry(auth_registry)

    if target == candidate:
        return True

    aliases = RegistryConstants.DOCKER_HUB_ALIASES
    return target in aliases and candidate in aliases


def decode_auth_entry(auth_entry: Dict) -> Optional[RegistryCredentials]:
    """
    Decode an ``auths`` entry into credentials

    Args:
        auth_entry: Entry with either a base64 "auth" field or username/password fields

    Returns:
        RegistryCredentials or None if the entry carries nothing usable
    """
    encoded = auth_entry.get('auth')
    if encoded:
        try:
            decoded = base64.b64decode(encoded).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.debug(f"Could not decode auth entry: {e}")
            return None
        username, sep, password = decoded.partition(':')
        if sep:
            return RegistryCredentials(username, password)
        return None

    if auth_entry.get('username') and auth_entry.get('password'):
        return RegistryCredentials(auth_entry['username'], auth_entry['password'])

    return None


def run_credential_helper(helper: str, registry: str) -> Optional[RegistryCredentials]:
    """
    Query a docker credential helper

    Args:
        helper: Helper suffix (e.g. "desktop", "ecr-login")
        registry: Server URL passed to the helper on stdin

    Returns:
        RegistryCredentials or None if the helper is missing or has no entry
    """
    command = [f"{RegistryConstants.CREDENTIAL_HELPER_PREFIX}{helper}", "get"]
    try:
        result = subprocess.run(
            command,
            input=registry,
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Credential helper {command[0]} failed: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"Credential helper {command[0]} has no entry for {registry}")
        return None

    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        logger.warning(f"Credential helper {command[0]} returned invalid JSON: {e}")
        return None

    username = payload.get('Username', '')
    secret = payload.get('Secret', '')
    if not secret:
        return None

    return RegistryCredentials(username, secret)


def build_keychain(username: str = "", password: str = ""):
    """
    Build the keychain used for registry pulls

    Explicit credentials are used only when both a username and a password
    are supplied; otherwise the default keychain is consulted.

    Args:
        username: Registry username
        password: Registry password

    Returns:
        StaticKeychain or DefaultKeychain
    """
    if username and password:
        return StaticKeychain(username, password)

    return DefaultKeychain()
