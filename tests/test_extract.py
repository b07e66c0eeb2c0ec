#!/usr/bin/env python3
"""
Manifest Extraction Test Suite

Tests manifest synthesis, name normalization, filtering, cleanup, apply
ordering and the combined transformation stage.
"""

import copy
import random

import pytest

from olm_extractor.libs.bundle.loader import Bundle
from olm_extractor.libs.core.config import CertManagerConfig
from olm_extractor.libs.core.exceptions import ExtractionError, FilterError
from olm_extractor.libs.extract.filter import ResourceFilter
from olm_extractor.libs.extract.kube import clean, is_cluster_scoped, sort_for_apply
from olm_extractor.libs.extract.normalize import is_generated_name, normalize_names
from olm_extractor.libs.extract.synthesizer import ManifestSynthesizer, generate_name, synthesize
from olm_extractor.libs.extract.transform import apply_transformations, extract_manifests

from test_constants import CommonTestConstants, TestData, TestUtilities

NAMESPACE = CommonTestConstants.NAMESPACE
OPERATOR = CommonTestConstants.OPERATOR_NAME
SERVICE = f"{OPERATOR}-webhook-service"


def make_bundle(csv=None, crds=None, objects=None) -> Bundle:
    return Bundle(
        csv=csv if csv is not None else TestData.csv(),
        crds=crds if crds is not None else [TestData.crd()],
        objects=objects or [],
        annotations={}
    )


class TestManifestSynthesizer:
    """Synthesis of installable objects from a CSV"""

    def test_logical_order(self):
        objects = synthesize(make_bundle(), NAMESPACE)

        assert TestUtilities.kinds(objects) == [
            'Namespace', 'CustomResourceDefinition', 'ServiceAccount', 'Role', 'RoleBinding',
            'ClusterRole', 'ClusterRoleBinding', 'Deployment'
        ]

    def test_default_namespace_is_not_created(self):
        objects = synthesize(make_bundle(), "default")
        assert 'Namespace' not in TestUtilities.kinds(objects)

    def test_rbac_names_and_bindings(self):
        objects = synthesize(make_bundle(), NAMESPACE)

        role = TestUtilities.find(objects, 'Role')
        binding = TestUtilities.find(objects, 'RoleBinding')
        cluster_binding = TestUtilities.find(objects, 'ClusterRoleBinding')

        prefix = f"{CommonTestConstants.CSV_NAME}-{CommonTestConstants.SERVICE_ACCOUNT}-"
        assert role['metadata']['name'].startswith(prefix)
        assert is_generated_name(role['metadata']['name'])
        assert binding['roleRef']['name'] == role['metadata']['name']
        assert binding['subjects'] == [{
            'kind': 'ServiceAccount', 'name': CommonTestConstants.SERVICE_ACCOUNT, 'namespace': NAMESPACE
        }]
        assert cluster_binding['subjects'][0]['namespace'] == NAMESPACE
        assert 'namespace' not in TestUtilities.find(objects, 'ClusterRole')['metadata']

    def test_generated_names_are_deterministic(self):
        permission = TestData.permission()
        assert generate_name("base", "csv", permission) == generate_name("base", "csv", copy.deepcopy(permission))
        assert generate_name("base", "csv", permission) != generate_name("base", "other", permission)

    def test_rbac_grouped_per_service_account(self):
        csv = TestData.csv(
            permissions=[TestData.permission("a"), TestData.permission("b")],
            cluster_permissions=[TestData.permission("a")]
        )
        objects = ManifestSynthesizer(NAMESPACE).install_strategy(csv)

        assert [(obj['kind'], obj['subjects'][0]['name'] if 'subjects' in obj else obj['metadata']['name'])
                for obj in objects if obj['kind'] != 'Deployment'] == [
            ('ServiceAccount', 'a'), ('Role', objects[1]['metadata']['name']), ('RoleBinding', 'a'),
            ('ClusterRole', objects[3]['metadata']['name']), ('ClusterRoleBinding', 'a'),
            ('ServiceAccount', 'b'), ('Role', objects[6]['metadata']['name']), ('RoleBinding', 'b'),
        ]

    def test_core_group_defaulted(self):
        csv = TestData.csv(permissions=[TestData.permission(rules=[{'resources': ['pods'], 'verbs': ['get']}])])
        role = TestUtilities.find(synthesize(make_bundle(csv), NAMESPACE), 'Role')
        assert role['rules'] == [{'resources': ['pods'], 'verbs': ['get'], 'apiGroups': ['']}]

    def test_deployment_namespace_and_labels(self):
        deployment = TestUtilities.find(synthesize(make_bundle(), NAMESPACE), 'Deployment')

        assert deployment['metadata'] == {
            'name': OPERATOR, 'namespace': NAMESPACE, 'labels': {'control-plane': 'controller-manager'}
        }
        assert deployment['spec']['template']['metadata']['namespace'] == NAMESPACE

    def test_unsupported_strategy(self):
        with pytest.raises(ExtractionError, match="unsupported install strategy: helm"):
            synthesize(make_bundle(TestData.csv(strategy="helm")), NAMESPACE)

    def test_missing_csv(self):
        with pytest.raises(ExtractionError, match="does not contain a ClusterServiceVersion"):
            synthesize(make_bundle(csv={}), NAMESPACE)

    def test_conversion_webhook_patches_v1_crd_only(self):
        conversion = TestData.webhook_definition(
            "ConversionWebhook", "cwidget.kb.io", webhookPath="/convert",
            conversionCRDs=['widgets.example.com', 'gadgets.example.com']
        )
        csv = TestData.csv(webhooks=[conversion])
        crds = [TestData.crd(), TestData.crd("gadgets.example.com", "apiextensions.k8s.io/v1beta1")]

        objects = synthesize(make_bundle(csv, crds), NAMESPACE)

        widgets = TestUtilities.find(objects, 'CustomResourceDefinition', 'widgets.example.com')
        gadgets = TestUtilities.find(objects, 'CustomResourceDefinition', 'gadgets.example.com')
        assert widgets['spec']['conversion'] == {
            'strategy': 'Webhook',
            'webhook': {
                'clientConfig': {'service': {
                    'namespace': NAMESPACE, 'name': SERVICE, 'path': '/convert', 'port': 443
                }},
                'conversionReviewVersions': ['v1']
            }
        }
        assert 'conversion' not in gadgets['spec']
        assert 'ValidatingWebhookConfiguration' not in TestUtilities.kinds(objects)

    def test_webhook_service_and_configuration(self):
        csv = TestData.csv(webhooks=[TestData.webhook_definition()])
        objects = synthesize(make_bundle(csv), NAMESPACE)

        service = TestUtilities.find(objects, 'Service', SERVICE)
        assert service['spec']['ports'][0]['port'] == 443
        assert service['spec']['ports'][0]['targetPort'] == 9443
        assert service['spec']['selector'] == {'control-plane': 'controller-manager'}

        webhook = TestUtilities.find(objects, 'ValidatingWebhookConfiguration')['webhooks'][0]
        assert webhook['clientConfig']['service'] == {
            'name': SERVICE, 'namespace': NAMESPACE, 'path': '/validate-example-com-v1-widget', 'port': 443
        }
        assert 'reinvocationPolicy' not in webhook

    def test_one_service_per_deployment(self):
        csv = TestData.csv(webhooks=[
            TestData.webhook_definition(),
            TestData.webhook_definition("MutatingAdmissionWebhook", "mexample.kb.io", reinvocationPolicy="Never"),
        ])
        objects = synthesize(make_bundle(csv), NAMESPACE)

        assert TestUtilities.names(objects, 'Service') == [SERVICE]
        mutating = TestUtilities.find(objects, 'MutatingWebhookConfiguration')
        assert mutating['webhooks'][0]['reinvocationPolicy'] == "Never"

    def test_service_selector_fallback(self):
        csv = TestData.csv(webhooks=[TestData.webhook_definition(deployment_name="other")])
        objects = synthesize(make_bundle(csv), NAMESPACE)

        service = TestUtilities.find(objects, 'Service', "other-webhook-service")
        assert service['spec']['selector'] == {'app.kubernetes.io/name': 'other'}

    def test_other_resources_get_namespace_by_scope(self):
        extra = [TestData.obj('ConfigMap', 'settings'), TestData.obj('PriorityClass', 'high',
                                                                     'scheduling.k8s.io/v1')]
        objects = synthesize(make_bundle(objects=extra), NAMESPACE)

        assert TestUtilities.find(objects, 'ConfigMap')['metadata']['namespace'] == NAMESPACE
        assert 'namespace' not in TestUtilities.find(objects, 'PriorityClass')['metadata']
        assert 'namespace' not in extra[0]['metadata']


class TestNormalizeNames:
    """Replacement of generated names"""

    def test_rbac_names_and_role_refs(self):
        objects = normalize_names(synthesize(make_bundle(), NAMESPACE))

        assert TestUtilities.names(objects, 'Role') == [f"{OPERATOR}-role"]
        assert TestUtilities.names(objects, 'RoleBinding') == [f"{OPERATOR}-rolebinding"]
        assert TestUtilities.names(objects, 'ClusterRole') == [f"{OPERATOR}-clusterrole"]
        assert TestUtilities.names(objects, 'ClusterRoleBinding') == [f"{OPERATOR}-clusterrolebinding"]
        assert TestUtilities.find(objects, 'RoleBinding')['roleRef']['name'] == f"{OPERATOR}-role"
        assert TestUtilities.find(objects, 'ClusterRoleBinding')['roleRef']['name'] == f"{OPERATOR}-clusterrole"

    def test_numbered_names(self):
        csv = TestData.csv(permissions=[TestData.permission("a"), TestData.permission("b")])
        objects = normalize_names(synthesize(make_bundle(csv), NAMESPACE))

        assert TestUtilities.names(objects, 'Role') == [f"{OPERATOR}-role", f"{OPERATOR}-role-1"]
        bindings = [obj for obj in objects if obj['kind'] == 'RoleBinding']
        assert [b['roleRef']['name'] for b in bindings] == [f"{OPERATOR}-role", f"{OPERATOR}-role-1"]

    def test_plain_names_are_kept(self):
        objects = [TestData.obj('Role', 'manager-role', 'rbac.authorization.k8s.io/v1')]
        assert TestUtilities.names(normalize_names(objects), 'Role') == ['manager-role']

    def test_webhook_configuration_names(self):
        csv = TestData.csv(webhooks=[
            TestData.webhook_definition(generate_name="vwidget.v1.example.com"),
            TestData.webhook_definition(generate_name="vgadget.v1.example.com"),
            TestData.webhook_definition("MutatingAdmissionWebhook", "mwidget.v1.example.com"),
            TestData.webhook_definition(generate_name="custom.example.com"),
        ])
        objects = normalize_names(synthesize(make_bundle(csv), NAMESPACE))

        assert TestUtilities.names(objects, 'ValidatingWebhookConfiguration') == [
            f"{OPERATOR}-validating-webhook", f"{OPERATOR}-validating-webhook-1", "custom.example.com"
        ]
        assert TestUtilities.names(objects, 'MutatingWebhookConfiguration') == [f"{OPERATOR}-mutating-webhook"]


class TestResourceFilter:
    """jq include/exclude selection"""

    @pytest.fixture
    def objects(self):
        return normalize_names(synthesize(make_bundle(), NAMESPACE))

    def test_no_expressions_keep_everything(self, objects):
        assert ResourceFilter().apply(objects) == objects

    def test_include(self, objects):
        kept = ResourceFilter(include=['.kind == "Deployment"']).apply(objects)
        assert TestUtilities.kinds(kept) == ['Deployment']

    def test_exclude_wins(self, objects):
        kept = ResourceFilter(
            include=['.kind == "Deployment"', '.kind == "Namespace"'],
            exclude=[f'.metadata.name == "{OPERATOR}"']
        ).apply(objects)
        assert TestUtilities.kinds(kept) == ['Namespace']

    def test_include_requires_literal_true(self, objects):
        assert ResourceFilter(include=['.metadata.name']).apply(objects) == []

    def test_evaluation_errors_do_not_match(self, objects):
        kept = ResourceFilter(exclude=['.metadata.name + 1 == 2']).apply(objects)
        assert kept == objects

    def test_empty_output_does_not_match(self, objects):
        assert ResourceFilter(include=['empty']).apply(objects) == []

    def test_invalid_expressions(self):
        with pytest.raises(FilterError, match='invalid include expression ".kind =="'):
            ResourceFilter(include=['.kind =='])
        with pytest.raises(FilterError, match='invalid exclude expression "select\\("'):
            ResourceFilter(exclude=['select('])

    def test_callable_predicates(self, objects):
        kept = ResourceFilter(include=[lambda obj: obj['kind'] == 'ServiceAccount']).apply(objects)
        assert TestUtilities.kinds(kept) == ['ServiceAccount']

    def test_exclusion_removes_exactly_matching_objects(self, objects):
        rng = random.Random(7)
        kinds = sorted(set(TestUtilities.kinds(objects)))
        for _ in range(10):
            excluded = set(rng.sample(kinds, rng.randint(0, len(kinds))))
            expressions = [f'.kind == "{kind}"' for kind in excluded]
            kept = ResourceFilter(exclude=expressions).apply(objects)
            assert kept == [obj for obj in objects if obj['kind'] not in excluded]


class TestKubeHelpers:
    """Cleanup, scope detection and apply order"""

    def test_clean(self):
        obj = {
            'a': None, 'b': {}, 'c': [], 'd': '', 'e': 0, 'f': False,
            'g': {'h': '', 'i': [None, {}]},
            'rules': [{'apiGroups': ['', 'apps'], 'verbs': ['get']}],
            'spec': {'selfSigned': {}}
        }
        original = copy.deepcopy(obj)

        assert clean(obj) == {
            'e': 0, 'f': False,
            'rules': [{'apiGroups': ['', 'apps'], 'verbs': ['get']}],
            'spec': {'selfSigned': {}}
        }
        assert obj == original

    def test_clean_is_idempotent(self):
        objects = normalize_names(synthesize(make_bundle(), NAMESPACE))
        for obj in objects:
            assert clean(clean(obj)) == clean(obj)

    @pytest.mark.parametrize("kind,expected", [
        ("ClusterRole", True), ("StorageClass", True), ("Namespace", True),
        ("ValidatingWebhookConfiguration", True), ("ClusterServiceVersion", False),
        ("Deployment", False), ("Widget", False), ("", False),
    ])
    def test_cluster_scope(self, kind, expected):
        assert is_cluster_scoped(kind) is expected

    def test_sort_for_apply(self):
        order = [
            'Namespace', 'CustomResourceDefinition', 'ServiceAccount', 'Role', 'RoleBinding',
            'ClusterRole', 'ClusterRoleBinding', 'Deployment', 'Service', 'Issuer', 'Certificate',
            'ValidatingWebhookConfiguration', 'ConfigMap'
        ]
        objects = [TestData.obj(kind, f"{kind.lower()}-{i}") for i in range(2) for kind in order]
        random.Random(3).shuffle(objects)

        result = sort_for_apply(objects)

        assert TestUtilities.kinds(result) == [kind for kind in order for _ in range(2)]
        for kind in order:
            names = TestUtilities.names(result, kind)
            assert names == [n for n in TestUtilities.names(objects, kind)]

    def test_sort_keeps_relative_order_of_unknown_kinds(self):
        objects = [TestData.obj('Widget', 'w'), TestData.obj('ConfigMap', 'c'), TestData.obj('Namespace', 'n')]
        assert TestUtilities.kinds(sort_for_apply(objects)) == ['Namespace', 'Widget', 'ConfigMap']


class TestTransformations:
    """Extraction and transformation stages"""

    @staticmethod
    def webhook_objects():
        csv = TestData.csv(webhooks=[TestData.webhook_definition()])
        return extract_manifests(make_bundle(csv), NAMESPACE)

    def test_generated_issuer(self):
        objects = apply_transformations(self.webhook_objects(), NAMESPACE)

        issuer = TestUtilities.find(objects, 'Issuer')
        certificate = TestUtilities.find(objects, 'Certificate')
        webhook = TestUtilities.find(objects, 'ValidatingWebhookConfiguration')

        assert issuer['metadata'] == {'name': f"{OPERATOR}-selfsigned", 'namespace': NAMESPACE}
        assert issuer['spec'] == {'selfSigned': {}}
        assert certificate['metadata']['name'] == f"{SERVICE}-cert"
        assert certificate['spec']['secretName'] == f"{SERVICE}-tls"
        assert certificate['spec']['issuerRef'] == {'kind': 'Issuer', 'name': f"{OPERATOR}-selfsigned"}
        assert webhook['metadata']['annotations'] == {
            'cert-manager.io/inject-ca-from': f"{NAMESPACE}/{SERVICE}-cert"
        }
        assert TestUtilities.names(objects, 'Service') == [SERVICE]
        assert objects == sort_for_apply(objects)

    def test_existing_issuer(self):
        config = CertManagerConfig(issuer_name="corporate-ca", issuer_kind="ClusterIssuer")
        objects = apply_transformations(self.webhook_objects(), NAMESPACE, cert_manager=config)

        assert 'Issuer' not in TestUtilities.kinds(objects)
        assert TestUtilities.find(objects, 'Certificate')['spec']['issuerRef'] == {
            'kind': 'ClusterIssuer', 'name': 'corporate-ca'
        }

    def test_no_webhooks_no_issuer(self):
        objects = apply_transformations(extract_manifests(make_bundle(), NAMESPACE), NAMESPACE)
        assert not {'Issuer', 'Certificate'} & set(TestUtilities.kinds(objects))

    def test_disabled(self):
        objects = apply_transformations(self.webhook_objects(), NAMESPACE,
                                        cert_manager=CertManagerConfig(enabled=False))
        assert not {'Issuer', 'Certificate'} & set(TestUtilities.kinds(objects))
        webhook = TestUtilities.find(objects, 'ValidatingWebhookConfiguration')
        assert 'annotations' not in webhook['metadata']

    def test_openshift_provider(self):
        objects = apply_transformations(self.webhook_objects(), NAMESPACE,
                                        cert_manager=CertManagerConfig(provider="openshift"))

        assert TestUtilities.names(objects, 'ConfigMap') == [f"{SERVICE}-ca"]
        assert 'Issuer' not in TestUtilities.kinds(objects)

    def test_filter_runs_before_injection(self):
        objects = apply_transformations(
            self.webhook_objects(), NAMESPACE, exclude=['.kind == "ValidatingWebhookConfiguration"']
        )
        assert not {'Issuer', 'Certificate'} & set(TestUtilities.kinds(objects))
