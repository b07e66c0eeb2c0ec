#!/usr/bin/env python3
"""
Registry Test Suite

Covers image reference parsing, path-safe layer extraction, the httpx
registry client, the image retriever and the registry credential chain.
"""

import base64
import hashlib
import io
import json
import os
import tarfile

import httpx
import pytest

from olm_extractor.libs.core import auth
from olm_extractor.libs.core.auth import DefaultKeychain, RegistryCredentials, StaticKeychain, build_keychain
from olm_extractor.libs.core.config import RegistryConfig
from olm_extractor.libs.core.exceptions import (
    AuthenticationError, ExtractionError, NetworkError, RegistryError
)
from olm_extractor.libs.registry.client import RegistryClient, parse_auth_challenge
from olm_extractor.libs.registry.reference import ImageReference
from olm_extractor.libs.registry.retriever import BundleResource, extract_image, resolve
from olm_extractor.libs.registry.tar import (
    extract_archive, has_all_required_content, layer_contains_relevant_paths
)

from test_constants import FakeLayerSource, RegistryTestConstants, TestUtilities


def _digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class TestImageReference:
    """Image reference parsing"""

    def test_registry_repository_and_tag(self):
        ref = ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE)
        assert ref.registry == "quay.io"
        assert ref.repository == "example/operator-bundle"
        assert ref.tag == "v1.0.0"
        assert ref.digest == ""
        assert ref.api_host == "quay.io"
        assert str(ref) == RegistryTestConstants.BUNDLE_IMAGE

    def test_docker_hub_defaults(self):
        ref = ImageReference.parse("ubuntu")
        assert ref.registry == "docker.io"
        assert ref.repository == "library/ubuntu"
        assert ref.tag == "latest"
        assert ref.api_host == "registry-1.docker.io"

    def test_docker_hub_alias_is_normalized(self):
        ref = ImageReference.parse("index.docker.io/org/app:1.0")
        assert ref.registry == "docker.io"
        assert ref.repository == "org/app"

    def test_digest_with_port_registry(self):
        digest = "sha256:" + "a" * 64
        ref = ImageReference.parse(f"localhost:5000/operator@{digest}")
        assert ref.registry == "localhost:5000"
        assert ref.repository == "operator"
        assert ref.tag == ""
        assert ref.reference == digest

    @pytest.mark.parametrize("image", ["", "quay.io/Upper/case", "quay.io/org/app:bad tag", "app@sha256:xyz"])
    def test_invalid_references(self, image):
        with pytest.raises(RegistryError, match="failed to parse image reference"):
            ImageReference.parse(image)


class TestTarExtraction:
    """Path-safe extraction of layer archives"""

    @staticmethod
    def _archive_with(member: tarfile.TarInfo, content: bytes = b"") -> tarfile.TarFile:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            member.size = len(content)
            archive.addfile(member, io.BytesIO(content))
        buffer.seek(0)
        return tarfile.open(fileobj=buffer, mode="r")

    def test_extracts_files_and_keeps_mode(self, tmp_path):
        data = TestUtilities.make_tar({"manifests/csv.yaml": b"kind: ClusterServiceVersion\n"})
        with TestUtilities.open_tar(data) as archive:
            count = extract_archive(archive, str(tmp_path))

        extracted = tmp_path / "manifests" / "csv.yaml"
        assert count == 1
        assert extracted.read_text() == "kind: ClusterServiceVersion\n"
        assert extracted.stat().st_mode & 0o777 == 0o644

    def test_parent_traversal_is_rejected(self, tmp_path):
        target = tmp_path / "target"
        target.mkdir()

        archive = self._archive_with(tarfile.TarInfo("../../etc/passwd"), b"root:x:0:0")
        with pytest.raises(ExtractionError, match=r"illegal file path in tar: \.\./\.\./etc/passwd"):
            extract_archive(archive, str(target))

        assert not (tmp_path / "etc").exists()
        assert list(target.iterdir()) == []

    def test_absolute_path_is_rejected(self, tmp_path):
        archive = self._archive_with(tarfile.TarInfo("/etc/passwd"), b"root:x:0:0")
        with pytest.raises(ExtractionError, match="illegal file path in tar: /etc/passwd"):
            extract_archive(archive, str(tmp_path))

    def test_writes_through_symlinked_parent_are_skipped(self, tmp_path):
        target = tmp_path / "target"
        outside = tmp_path / "outside"
        target.mkdir()
        outside.mkdir()

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            link = tarfile.TarInfo("escape")
            link.type = tarfile.SYMTYPE
            link.linkname = str(outside)
            archive.addfile(link)

            payload = b"owned"
            evil = tarfile.TarInfo("escape/evil.txt")
            evil.size = len(payload)
            archive.addfile(evil, io.BytesIO(payload))
        buffer.seek(0)

        with tarfile.open(fileobj=buffer, mode="r") as archive:
            extract_archive(archive, str(target))

        assert os.path.islink(target / "escape")
        assert not (outside / "evil.txt").exists()

    def test_layer_relevance_uses_headers(self):
        relevant = TestUtilities.make_tar({"./configs/pkg/catalog.json": b"{}"})
        irrelevant = TestUtilities.make_tar({"usr/bin/opm": b"binary"})

        with TestUtilities.open_tar(relevant) as archive:
            assert layer_contains_relevant_paths(archive, ["/configs/"])
        with TestUtilities.open_tar(irrelevant) as archive:
            assert not layer_contains_relevant_paths(archive, ["/configs/"])

    def test_has_all_required_content(self, tmp_path):
        assert not has_all_required_content(str(tmp_path), ["/configs/"])
        (tmp_path / "configs").mkdir()
        assert has_all_required_content(str(tmp_path), ["/configs/"])


class RegistryStub:
    """httpx handler emulating a token-protected registry"""

    def __init__(self, layer: bytes, require_token: bool = False, index: bool = False):
        self.layer = layer
        self.layer_digest = _digest(layer)
        self.require_token = require_token
        self.index = index
        self.token_requests = []
        self.paths = []

    def manifest(self):
        return {
            'schemaVersion': 2,
            'mediaType': 'application/vnd.oci.image.manifest.v1+json',
            'config': {'digest': 'sha256:' + 'c' * 64},
            'layers': [{'mediaType': 'application/vnd.oci.image.layer.v1.tar',
                        'digest': self.layer_digest, 'size': len(self.layer)}]
        }

    def image_index(self):
        return {
            'schemaVersion': 2,
            'mediaType': 'application/vnd.oci.image.index.v1+json',
            'manifests': [
                {'digest': 'sha256:' + 'a' * 64, 'platform': {'os': 'linux', 'architecture': 'arm64'}},
                {'digest': 'sha256:' + 'b' * 64, 'platform': {'os': 'linux', 'architecture': 'amd64'}},
            ]
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            self.token_requests.append(request)
            return httpx.Response(200, json={'token': RegistryTestConstants.TOKEN})

        self.paths.append(request.url.path)
        if self.require_token and request.headers.get("Authorization") != f"Bearer {RegistryTestConstants.TOKEN}":
            return httpx.Response(401, headers={
                'WWW-Authenticate': (
                    f'Bearer realm="{RegistryTestConstants.TOKEN_REALM}",service="quay.io",'
                    f'scope="repository:{RegistryTestConstants.REPOSITORY}:pull"'
                )
            })

        base = f"/v2/{RegistryTestConstants.REPOSITORY}"
        if request.url.path == f"{base}/manifests/v1.0.0":
            return httpx.Response(200, json=self.image_index() if self.index else self.manifest())
        if request.url.path == f"{base}/manifests/sha256:{'b' * 64}":
            return httpx.Response(200, json=self.manifest())
        if request.url.path.startswith(f"{base}/blobs/"):
            return httpx.Response(200, content=self.layer)
        return httpx.Response(404)


class TestRegistryClient:
    """Registry client against httpx.MockTransport"""

    @staticmethod
    def _client(stub, keychain=None) -> RegistryClient:
        return RegistryClient(keychain or DefaultKeychain(auth_files=[]), transport=httpx.MockTransport(stub))

    def test_parse_auth_challenge(self):
        challenge = parse_auth_challenge('Bearer realm="https://auth.io/token",service="registry.io"')
        assert challenge == {'scheme': 'bearer', 'realm': 'https://auth.io/token', 'service': 'registry.io'}

    def test_anonymous_pull(self):
        layer = TestUtilities.bundle_layer()
        stub = RegistryStub(layer)
        image = ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE)

        with self._client(stub) as client:
            layers = client.layers(image)
            assert [descriptor['digest'] for descriptor in layers] == [stub.layer_digest]
            with client.open_layer(image, layers[0]) as archive:
                names = archive.getnames()

        assert 'manifests/example-operator.clusterserviceversion.yaml' in names

    def test_bearer_token_negotiation(self):
        stub = RegistryStub(TestUtilities.bundle_layer(), require_token=True)
        image = ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE)

        with self._client(stub) as client:
            manifest = client.get_manifest(image)

        assert manifest['layers'][0]['digest'] == stub.layer_digest
        assert len(stub.token_requests) == 1
        token_request = stub.token_requests[0]
        assert token_request.url.params['scope'] == f"repository:{RegistryTestConstants.REPOSITORY}:pull"
        assert token_request.url.params['service'] == "quay.io"
        assert "Authorization" not in token_request.headers

    def test_token_request_uses_basic_auth_with_credentials(self):
        stub = RegistryStub(TestUtilities.bundle_layer(), require_token=True)
        keychain = StaticKeychain(RegistryTestConstants.USERNAME, RegistryTestConstants.PASSWORD)

        with self._client(stub, keychain) as client:
            client.get_manifest(ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE))

        expected = base64.b64encode(
            f"{RegistryTestConstants.USERNAME}:{RegistryTestConstants.PASSWORD}".encode()
        ).decode()
        assert stub.token_requests[0].headers['Authorization'] == f"Basic {expected}"

    def test_index_resolves_linux_amd64(self):
        stub = RegistryStub(TestUtilities.bundle_layer(), index=True)

        with self._client(stub) as client:
            manifest = client.get_manifest(ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE))

        assert 'layers' in manifest
        assert stub.paths[-1].endswith('b' * 64)

    def test_digest_mismatch_is_rejected(self):
        stub = RegistryStub(TestUtilities.bundle_layer())
        image = ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE)

        with self._client(stub) as client:
            with pytest.raises(RegistryError, match="failed digest verification"):
                with client.open_layer(image, {"digest": _digest(b"other content")}):
                    pass

    def test_insecure_falls_back_to_http(self):
        stub = RegistryStub(TestUtilities.bundle_layer(), require_token=True)
        schemes = []

        def handler(request):
            if request.url.host == "auth.example.com":
                return stub(request)
            schemes.append(request.url.scheme)
            if request.url.scheme == "https":
                raise httpx.ConnectError("connection refused", request=request)
            return stub(request)

        client = RegistryClient(DefaultKeychain(auth_files=[]), insecure=True, transport=httpx.MockTransport(handler))
        with client:
            image = ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE)
            client.get_manifest(image)
            client.get_manifest(image)

        # One failed HTTPS attempt, the challenged request, its retry with a token, the cached second call
        assert schemes == ["https", "http", "http", "http"]
        assert len(stub.token_requests) == 1

    def test_secure_client_does_not_fall_back(self):
        schemes = []

        def handler(request):
            schemes.append(request.url.scheme)
            raise httpx.ConnectError("connection refused", request=request)

        client = RegistryClient(DefaultKeychain(auth_files=[]), transport=httpx.MockTransport(handler))
        with client:
            with pytest.raises(NetworkError):
                client.get_manifest(ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE))

        assert schemes == ["https"]

    def test_missing_image_is_network_error(self):
        stub = RegistryStub(TestUtilities.bundle_layer())
        with self._client(stub) as client:
            with pytest.raises(NetworkError, match="404"):
                client.get_manifest(ImageReference.parse("quay.io/example/missing:v1"))

    def test_forbidden_is_authentication_error(self):
        def handler(request):
            return httpx.Response(403)

        client = RegistryClient(DefaultKeychain(auth_files=[]), transport=httpx.MockTransport(handler))
        with client:
            with pytest.raises(AuthenticationError, match="403"):
                client.get_manifest(ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE))

    def test_basic_challenge_without_credentials_fails(self):
        def handler(request):
            return httpx.Response(401, headers={'WWW-Authenticate': 'Basic realm="registry"'})

        client = RegistryClient(DefaultKeychain(auth_files=[]), transport=httpx.MockTransport(handler))
        with client:
            with pytest.raises(AuthenticationError, match="requires credentials"):
                client.get_manifest(ImageReference.parse(RegistryTestConstants.BUNDLE_IMAGE))


class TestRetriever:
    """Image retriever with a fake registry-pull capability"""

    def test_extract_image_and_cleanup(self, tmp_path):
        source = FakeLayerSource({RegistryTestConstants.BUNDLE_IMAGE: [TestUtilities.bundle_layer()]})

        resource = extract_image(RegistryTestConstants.BUNDLE_IMAGE, RegistryConfig(), str(tmp_path),
                                 layer_source_factory=source.factory)

        assert os.path.isfile(os.path.join(resource.directory, 'manifests', 'widgets.crd.yaml'))
        assert source.closed

        resource.cleanup()
        resource.cleanup()
        assert not os.path.exists(resource.directory)

    def test_relevant_layers_only_newest_first(self, tmp_path):
        base = TestUtilities.make_tar({"usr/bin/opm": b"binary"})
        catalog = TestUtilities.catalog_layer()
        source = FakeLayerSource({RegistryTestConstants.CATALOG_IMAGE: [base, catalog]})

        with extract_image(RegistryTestConstants.CATALOG_IMAGE, RegistryConfig(), str(tmp_path),
                           ["/configs/"], source.factory) as resource:
            assert os.path.isdir(os.path.join(resource.directory, 'configs'))
            assert not os.path.exists(os.path.join(resource.directory, 'usr'))

        # Newest layer holds all content, so the base layer is never opened
        assert source.opened == [f"sha256:{1:064x}"]

    def test_no_matching_layers_removes_temp_dir(self, tmp_path):
        source = FakeLayerSource({RegistryTestConstants.CATALOG_IMAGE: [TestUtilities.make_tar({"a": b"b"})]})

        with pytest.raises(ExtractionError, match="no layers found containing paths"):
            extract_image(RegistryTestConstants.CATALOG_IMAGE, RegistryConfig(), str(tmp_path),
                          ["/configs/"], source.factory)

        assert list(tmp_path.iterdir()) == []

    def test_pull_failure_hints_at_login(self, tmp_path):
        source = FakeLayerSource(error=AuthenticationError("HTTP 401: Unauthorized"))

        with pytest.raises(RegistryError) as excinfo:
            extract_image(RegistryTestConstants.BUNDLE_IMAGE, RegistryConfig(), str(tmp_path),
                          layer_source_factory=source.factory)

        message = str(excinfo.value)
        assert message.startswith(f"failed to pull image {RegistryTestConstants.BUNDLE_IMAGE}")
        assert "docker login" in message
        assert list(tmp_path.iterdir()) == []

    def test_pull_failure_with_credentials_has_no_hint(self, tmp_path):
        source = FakeLayerSource(error=AuthenticationError("HTTP 401: Unauthorized"))
        config = RegistryConfig(username=RegistryTestConstants.USERNAME, password=RegistryTestConstants.PASSWORD)

        with pytest.raises(RegistryError) as excinfo:
            extract_image(RegistryTestConstants.BUNDLE_IMAGE, config, str(tmp_path),
                          layer_source_factory=source.factory)

        assert "docker login" not in str(excinfo.value)

    def test_directory_passthrough(self, tmp_path):
        with resolve(str(tmp_path), RegistryConfig()) as resource:
            assert resource.directory == str(tmp_path)
            assert resource.tmp_dir == ""
        assert tmp_path.exists()

    def test_cleanup_on_partial_resource(self):
        BundleResource().cleanup()


class TestCredentialChain:
    """Default keychain and credential helpers"""

    @staticmethod
    def _write(path, data) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))

    def test_auths_entry_with_base64_auth(self, tmp_path):
        auth_file = tmp_path / "config.json"
        encoded = base64.b64encode(b"user:pass").decode()
        self._write(auth_file, {'auths': {'quay.io': {'auth': encoded}}})

        credentials = DefaultKeychain([auth_file]).resolve("quay.io")

        assert credentials == RegistryCredentials("user", "pass")

    def test_username_password_fields_and_docker_alias(self, tmp_path):
        auth_file = tmp_path / "auth.json"
        self._write(auth_file, {'auths': {'https://index.docker.io/v1/': {'username': 'u', 'password': 'p'}}})

        assert DefaultKeychain([auth_file]).resolve("docker.io") == RegistryCredentials("u", "p")

    def test_files_are_searched_in_order(self, tmp_path):
        first = tmp_path / "first.json"
        second = tmp_path / "second.json"
        self._write(first, {'auths': {'other.io': {'username': 'a', 'password': 'b'}}})
        self._write(second, {'auths': {'quay.io': {'username': 'c', 'password': 'd'}}})

        keychain = DefaultKeychain([tmp_path / "missing.json", first, second])

        assert keychain.resolve("quay.io") == RegistryCredentials("c", "d")
        assert keychain.resolve("registry.example.com") is None

    def test_cred_helper_wins_over_auths(self, tmp_path, monkeypatch):
        auth_file = tmp_path / "config.json"
        self._write(auth_file, {
            'credHelpers': {'quay.io': 'fake'},
            'auths': {'quay.io': {'username': 'inline', 'password': 'inline'}}
        })
        calls = []

        def fake_helper(helper, registry):
            calls.append((helper, registry))
            return RegistryCredentials("helper", "secret")

        monkeypatch.setattr(auth, 'run_credential_helper', fake_helper)

        assert DefaultKeychain([auth_file]).resolve("quay.io") == RegistryCredentials("helper", "secret")
        assert calls == [("fake", "quay.io")]

    def test_missing_credential_helper_is_skipped(self):
        assert auth.run_credential_helper("olm-extractor-test-missing", "quay.io") is None

    def test_build_keychain(self):
        assert isinstance(build_keychain("user", "pass"), StaticKeychain)
        assert isinstance(build_keychain("user", ""), DefaultKeychain)
        assert isinstance(build_keychain(), DefaultKeychain)

    def test_registry_file_env_has_priority(self, monkeypatch, tmp_path):
        override = tmp_path / "override.json"
        monkeypatch.setenv("REGISTRY_AUTH_FILE", str(override))
        assert auth.get_auth_file_locations()[0] == override
