#!/usr/bin/env python3
"""
Bundle Loader Test Suite

Tests loading bundles from unpacked directories and bundle images.
"""

import json

import pytest
import yaml

from olm_extractor.libs.bundle.loader import load_bundle, load_bundle_directory, read_annotations
from olm_extractor.libs.core.exceptions import BundleLoadError

from test_constants import CommonTestConstants, FakeLayerSource, RegistryTestConstants, TestData, TestUtilities


class TestLoadBundleDirectory:
    """Bundles unpacked on disk"""

    def test_partitions_csv_crds_and_objects(self, tmp_path):
        extra = [TestData.obj('ConfigMap', 'settings'), TestData.service('metrics')]
        TestUtilities.write_bundle(str(tmp_path), extra=extra)

        bundle = load_bundle_directory(str(tmp_path))

        assert bundle.name == CommonTestConstants.CSV_NAME
        assert bundle.package == CommonTestConstants.PACKAGE
        assert [crd['metadata']['name'] for crd in bundle.crds] == ['widgets.example.com']
        assert TestUtilities.kinds(bundle.objects) == ['ConfigMap', 'Service']

    def test_manifests_at_root(self, tmp_path):
        (tmp_path / "csv.yaml").write_text(yaml.safe_dump(TestData.csv()))

        bundle = load_bundle_directory(str(tmp_path))

        assert bundle.name == CommonTestConstants.CSV_NAME
        assert bundle.annotations == {}

    def test_json_manifests_and_non_manifest_files(self, tmp_path):
        manifests = tmp_path / "manifests"
        manifests.mkdir()
        (manifests / "csv.json").write_text(json.dumps(TestData.csv()))
        (manifests / "README.md").write_text("# not a manifest")

        assert load_bundle_directory(str(tmp_path)).name == CommonTestConstants.CSV_NAME

    def test_documents_without_kind_are_skipped(self, tmp_path):
        TestUtilities.write_bundle(str(tmp_path), extra=[{'metadata': {'name': 'kindless'}}])
        assert load_bundle_directory(str(tmp_path)).objects == []

    def test_missing_csv(self, tmp_path):
        (tmp_path / "manifests").mkdir()
        (tmp_path / "manifests" / "crd.yaml").write_text(yaml.safe_dump(TestData.crd()))

        with pytest.raises(BundleLoadError, match="no ClusterServiceVersion found"):
            load_bundle_directory(str(tmp_path))

    def test_multiple_csvs(self, tmp_path):
        TestUtilities.write_bundle(str(tmp_path), extra=[TestData.csv(name="other.v2.0.0")])

        with pytest.raises(BundleLoadError, match="multiple ClusterServiceVersions found.*other.v2.0.0"):
            load_bundle_directory(str(tmp_path))

    def test_malformed_manifest(self, tmp_path):
        TestUtilities.write_bundle(str(tmp_path))
        (tmp_path / "manifests" / "broken.yaml").write_text("kind: [unterminated\n")

        with pytest.raises(BundleLoadError, match="failed to parse .*broken.yaml"):
            load_bundle_directory(str(tmp_path))

    def test_annotations_values_are_strings(self, tmp_path):
        (tmp_path / "metadata").mkdir()
        (tmp_path / "metadata" / "annotations.yaml").write_text(
            "annotations:\n  operators.operatorframework.io.bundle.package.v1: example-operator\n"
            "  example.com/replicas: 3\n"
        )

        annotations = read_annotations(str(tmp_path))

        assert annotations['example.com/replicas'] == "3"


class TestLoadBundle:
    """Bundles from directories and images"""

    def test_directory_source(self, tmp_path):
        TestUtilities.write_bundle(str(tmp_path))
        assert load_bundle(str(tmp_path)).name == CommonTestConstants.CSV_NAME
        assert (tmp_path / "manifests").exists()

    def test_image_source_is_cleaned_up(self, tmp_path):
        source = FakeLayerSource({RegistryTestConstants.BUNDLE_IMAGE: [TestUtilities.bundle_layer()]})

        bundle = load_bundle(RegistryTestConstants.BUNDLE_IMAGE, temp_dir=str(tmp_path),
                             layer_source_factory=source.factory)

        assert bundle.name == CommonTestConstants.CSV_NAME
        assert len(bundle.crds) == 1
        assert list(tmp_path.iterdir()) == []

    def test_image_without_csv_is_cleaned_up(self, tmp_path):
        layer = TestUtilities.make_tar({'manifests/crd.yaml': yaml.safe_dump(TestData.crd()).encode()})
        source = FakeLayerSource({RegistryTestConstants.BUNDLE_IMAGE: [layer]})

        with pytest.raises(BundleLoadError, match="failed to load bundle: no ClusterServiceVersion"):
            load_bundle(RegistryTestConstants.BUNDLE_IMAGE, temp_dir=str(tmp_path),
                        layer_source_factory=source.factory)

        assert list(tmp_path.iterdir()) == []

    def test_pull_errors_name_the_stage(self, tmp_path):
        source = FakeLayerSource()

        with pytest.raises(BundleLoadError, match="failed to load bundle: failed to pull image"):
            load_bundle(RegistryTestConstants.BUNDLE_IMAGE, temp_dir=str(tmp_path),
                        layer_source_factory=source.factory)
