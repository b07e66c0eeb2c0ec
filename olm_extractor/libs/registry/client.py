"""
Registry Client

Minimal OCI distribution (v2) client built on httpx. Fetches manifests and
streams layer blobs, negotiating bearer tokens or basic auth as the
registry requests.
"""

import base64
import hashlib
import logging
import re
import tarfile
import tempfile
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import httpx

from ..core.constants import NetworkConstants, RegistryConstants
from ..core.exceptions import AuthenticationError, NetworkError, RegistryError
from ..core.protocols import Keychain
from ..core.utils import format_bytes, handle_api_error, mask_sensitive_info
from .reference import ImageReference

logger = logging.getLogger(__name__)

CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


def parse_auth_challenge(header: str) -> Dict[str, str]:
    """
    Parse a WWW-Authenticate header

    Args:
        header: Header value such as 'Bearer realm="https://auth.io/token",service="registry"'

    Returns:
        Dict with a lowercase 'scheme' key plus the challenge parameters
    """
    scheme, _, params = header.strip().partition(' ')
    challenge = {key.lower(): value for key, value in CHALLENGE_PARAM_PATTERN.findall(params)}
    challenge['scheme'] = scheme.lower()
    return challenge


class RegistryClient:
    """Pulls manifests and layers from a container registry using httpx"""

    def __init__(
        self,
        keychain: Keychain,
        insecure: bool = False,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the registry client

        Args:
            keychain: Credential source consulted when a registry asks for auth
            insecure: Skip TLS verification and fall back to plain HTTP when
                an HTTPS connection cannot be established
            transport: Optional httpx transport (used by tests)
        """
        self.keychain = keychain
        self.insecure = insecure
        self.client = httpx.Client(
            timeout=httpx.Timeout(
                float(NetworkConstants.DEFAULT_TIMEOUT),
                read=float(NetworkConstants.LAYER_DOWNLOAD_TIMEOUT)
            ),
            headers={NetworkConstants.HTTPHeader.USER_AGENT: NetworkConstants.USER_AGENT},
            verify=not insecure,
            follow_redirects=True,
            transport=transport,
        )

        self._authorization: Dict[str, str] = {}
        self._schemes: Dict[str, str] = {}

        # Performance tracking
        self._start_time = time.time()
        self._request_count = 0
        self._total_bytes_received = 0

    def _url(self, image: ImageReference, path: str) -> str:
        scheme = self._schemes.get(image.api_host, "https")
        return f"{scheme}://{image.api_host}/v2/{image.repository}/{path}"

    def _auth_key(self, image: ImageReference) -> str:
        return f"{image.api_host}/{image.repository}"

    def _send(
        self,
        image: ImageReference,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        stream: bool = False
    ) -> httpx.Response:
        """
        Send a GET request, authenticating once if the registry challenges it

        Args:
            image: Image the request belongs to (selects host, repository and credentials)
            path: Path below /v2/<repository>/
            headers: Extra request headers
            stream: Return an unread streaming response

        Returns:
            httpx.Response with a successful status

        Raises:
            AuthenticationError: If the registry rejects the credentials
            NetworkError: On transport failures or unexpected HTTP status codes
        """
        authenticated = False

        while True:
            request_headers = dict(headers or {})
            authorization = self._authorization.get(self._auth_key(image))
            if authorization:
                request_headers[NetworkConstants.HTTPHeader.AUTHORIZATION] = authorization

            url = self._url(image, path)
            request = self.client.build_request("GET", url, headers=request_headers)
            try:
                response = self.client.send(request, stream=stream)
            except httpx.ConnectError as e:
                # Insecure registries may serve plain HTTP; switch the host over once
                if self.insecure and url.startswith("https://"):
                    logger.debug(f"HTTPS connection to {image.api_host} failed, retrying over HTTP")
                    self._schemes[image.api_host] = "http"
                    continue
                handle_api_error(e, f"Request to {image.api_host} failed", NetworkError)
            except httpx.RequestError as e:
                handle_api_error(e, f"Request to {image.api_host} failed", NetworkError)

            self._request_count += 1

            if response.status_code == NetworkConstants.HTTPStatus.UNAUTHORIZED and not authenticated:
                challenge = response.headers.get(NetworkConstants.HTTPHeader.WWW_AUTHENTICATE, "")
                response.close()
                self._authenticate(image, challenge)
                authenticated = True
                continue
            break

        if response.status_code in (NetworkConstants.HTTPStatus.UNAUTHORIZED,
                                    NetworkConstants.HTTPStatus.FORBIDDEN):
            response.close()
            raise AuthenticationError(
                f"HTTP {response.status_code}: {response.reason_phrase} for {image}"
            )

        if response.is_error:
            response.close()
            raise NetworkError(f"HTTP {response.status_code}: {response.reason_phrase} ({path})")

        return response

    def _authenticate(self, image: ImageReference, challenge_header: str) -> None:
        """
        Answer an authentication challenge and cache the Authorization header

        Args:
            image: Image being pulled
            challenge_header: Value of the WWW-Authenticate response header

        Raises:
            AuthenticationError: If no token can be obtained
        """
        challenge = parse_auth_challenge(challenge_header)
        credentials = self.keychain.resolve(image.registry)
        key = self._auth_key(image)

        if challenge['scheme'] == 'basic':
            if not credentials:
                raise AuthenticationError(f"registry {image.registry} requires credentials")
            userpass = f"{credentials.username}:{credentials.password}".encode("utf-8")
            self._authorization[key] = f"Basic {base64.b64encode(userpass).decode('ascii')}"
            return

        if challenge['scheme'] != 'bearer' or 'realm' not in challenge:
            raise AuthenticationError(
                f"unsupported authentication challenge from {image.registry}: {challenge_header!r}"
            )

        params = {'scope': challenge.get('scope') or f"repository:{image.repository}:pull"}
        if challenge.get('service'):
            params['service'] = challenge['service']

        auth = (credentials.username, credentials.password) if credentials else None
        logger.debug(f"Requesting token from {challenge['realm']} for scope {params['scope']}")

        try:
            response = self.client.get(challenge['realm'], params=params, auth=auth)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AuthenticationError(
                f"token request failed: HTTP {e.response.status_code}: {e.response.reason_phrase}"
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(mask_sensitive_info(f"Token request failed: {e}")) from e
        except ValueError as e:
            raise AuthenticationError(f"token response is not valid JSON: {e}") from e

        token = payload.get('token') or payload.get('access_token')
        if not token:
            raise AuthenticationError(f"token response from {challenge['realm']} carries no token")

        self._authorization[key] = f"Bearer {token}"

    def get_manifest(self, image: ImageReference) -> Dict[str, Any]:
        """
        Fetch the image manifest, resolving multi-platform indexes

        Args:
            image: Image to fetch

        Returns:
            Image manifest with a 'layers' list

        Raises:
            RegistryError: If the manifest cannot be used
        """
        accept = {NetworkConstants.HTTPHeader.ACCEPT: RegistryConstants.MediaType.get_accept_header()}
        manifest = self._get_json(image, f"manifests/{image.reference}", accept)

        media_type = manifest.get('mediaType', "")
        if media_type in RegistryConstants.MediaType.get_index_types() or 'manifests' in manifest:
            descriptor = self._select_platform(image, manifest.get('manifests') or [])
            logger.debug(f"Resolved index of {image} to {descriptor.get('digest')}")
            manifest = self._get_json(image, f"manifests/{descriptor['digest']}", accept)

        if 'layers' not in manifest:
            raise RegistryError(f"unsupported manifest for {image}: {manifest.get('mediaType', 'unknown')}")

        return manifest

    def _get_json(self, image: ImageReference, path: str, headers: Dict[str, str]) -> Dict[str, Any]:
        response = self._send(image, path, headers=headers)
        self._total_bytes_received += len(response.content)
        try:
            return response.json()
        except ValueError as e:
            raise RegistryError(f"invalid manifest JSON for {image}: {e}") from e

    def _select_platform(self, image: ImageReference, manifests: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Pick the linux/amd64 entry of an index, else the first entry

        Args:
            image: Image the index belongs to
            manifests: Index entries

        Returns:
            Selected manifest descriptor
        """
        if not manifests:
            raise RegistryError(f"image index for {image} has no manifests")

        wanted_os, wanted_arch = RegistryConstants.DEFAULT_PLATFORM
        for descriptor in manifests:
            platform = descriptor.get('platform') or {}
            if platform.get('os') == wanted_os and platform.get('architecture') == wanted_arch:
                return descriptor

        return manifests[0]

    def layers(self, image: ImageReference) -> List[Dict[str, Any]]:
        """
        List layer descriptors, oldest first

        Args:
            image: Image to inspect

        Returns:
            List of layer descriptors (mediaType, digest, size)
        """
        return list(self.get_manifest(image).get('layers') or [])

    @contextmanager
    def open_layer(self, image: ImageReference, descriptor: Dict[str, Any]) -> Iterator[tarfile.TarFile]:
        """
        Download a layer blob and open it as a tar archive

        The blob is spooled to a temporary file and its digest verified
        before the archive is opened. Compression is detected automatically.

        Args:
            image: Image the layer belongs to
            descriptor: Layer descriptor from the manifest

        Yields:
            tarfile.TarFile positioned at the first member

        Raises:
            RegistryError: If the blob digest does not match
        """
        digest = descriptor['digest']
        algorithm, _, expected = digest.partition(':')

        with tempfile.TemporaryFile() as blob:
            hasher = hashlib.new(algorithm) if algorithm in hashlib.algorithms_available else None
            response = self._send(image, f"blobs/{digest}", stream=True)
            try:
                for chunk in response.iter_bytes(NetworkConstants.DEFAULT_BUFFER_SIZE):
                    blob.write(chunk)
                    if hasher:
                        hasher.update(chunk)
                    self._total_bytes_received += len(chunk)
            except httpx.RequestError as e:
                handle_api_error(e, f"Downloading layer {digest} failed", NetworkError)
            finally:
                response.close()

            if hasher and hasher.hexdigest() != expected:
                raise RegistryError(f"layer {digest} failed digest verification")

            logger.debug(f"Downloaded layer {digest} ({format_bytes(blob.tell())})")
            blob.seek(0)

            try:
                archive = tarfile.open(fileobj=blob, mode="r:*")
            except tarfile.TarError as e:
                raise RegistryError(f"layer {digest} is not a tar archive: {e}") from e

            with archive:
                yield archive

    def close(self) -> None:
        """Close the HTTP client and log transfer statistics"""
        self.client.close()

        if self._request_count > 0:
            elapsed = time.time() - self._start_time
            logger.info(f"Registry session closed: {self._request_count} requests, "
                        f"{elapsed:.2f}s, {format_bytes(self._total_bytes_received)} transferred")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
