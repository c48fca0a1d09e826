import base64

import pytest

from infraforge.checks import (
    ConfigStateError,
    autoscaled_clusters,
    checksums_equal,
    config_error,
    manifest_name,
    secret_data,
)
from infraforge.model import (
    ClusterInfo,
    ClusterState,
    Config,
    K8sCluster,
    NodePool,
    Provider,
    WorkflowStatus,
)


@pytest.mark.parametrize(
    "first, second, expected",
    [
        (b"abc", b"abc", True),
        (b"abc", b"abd", False),
        (b"", b"", False),
        (b"abc", b"", False),
        (None, b"abc", False),
    ],
)
def test_checksums_equal(first, second, expected):
    assert checksums_equal(first, second) is expected


def test_config_error_none_when_all_fine():
    config = Config(state={"c1": ClusterState(status=WorkflowStatus.DONE)})
    assert config_error(config) is None


def test_config_error_reports_failed_clusters():
    config = Config(
        state={
            "c1": ClusterState(status=WorkflowStatus.ERROR, stage="TERRAFORMER", description="boom"),
            "c2": ClusterState(status=WorkflowStatus.DONE),
            "c3": ClusterState(status=WorkflowStatus.ERROR, stage="ANSIBLER", description="bad"),
        }
    )
    error = config_error(config)
    assert isinstance(error, ConfigStateError)
    assert error.clusters == ["c1", "c3"]
    text = str(error)
    assert "error in cluster c1" in text
    assert "boom" in text and "ANSIBLER" in text
    assert "c2" not in text


def pool(name, autoscaled):
    return NodePool(name=name, provider=Provider(spec_name="p", cloud_provider_name="hetzner"), autoscaled=autoscaled)


def test_autoscaled_clusters():
    scaled = K8sCluster(cluster_info=ClusterInfo(name="a", node_pools=[pool("x", False), pool("y", True)]))
    fixed = K8sCluster(cluster_info=ClusterInfo(name="b", node_pools=[pool("z", False)]))
    config = Config(current_clusters=[scaled, fixed])
    assert autoscaled_clusters(config) == [scaled]
    assert autoscaled_clusters(Config()) == []


def test_manifest_name():
    assert manifest_name(b"name: test-set1\nproviders: {}\n") == "test-set1"


@pytest.mark.parametrize("document", [b"providers: {}\n", b"name: ''\n", b"- a\n- b\n"])
def test_manifest_name_missing(document):
    with pytest.raises(ValueError, match="does not have a name"):
        manifest_name(document)


def test_manifest_name_invalid_yaml():
    with pytest.raises(ValueError, match="unmarshalling"):
        manifest_name(b"name: [unclosed")


def test_secret_data_round_trip():
    manifest = b"name: test-set1\n"
    data = secret_data(manifest, "test-set1", "claudie")
    assert data["secret_name"] == "test-set1"
    assert data["field_name"] == "test-set1"
    assert data["namespace"] == "claudie"
    assert base64.b64decode(data["manifest"]) == manifest