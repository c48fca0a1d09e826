import functools
import json
import sys
from pathlib import Path

import pytest

from infraforge.backend import BackendSettings
from infraforge.cluster_builder import ClusterBuilder
from infraforge.kubernetes import K8sClusterBuild
from infraforge.model import ClusterInfo, K8sCluster, LBCluster, Node, NodePool, Provider
from infraforge.templates import TemplateLoader

FAKE_TERRAFORM = """
import json, os, sys
ips_path, log_path, command, *rest = sys.argv[1:]
if command == "output":
    with open(ips_path) as fh:
        data = json.load(fh)
    print(json.dumps(data[rest[-1]]))
else:
    files = {}
    for name in sorted(os.listdir(".")):
        with open(name) as fh:
            files[name] = fh.read()
    with open(log_path, "a") as fh:
        fh.write(json.dumps({"command": command, "files": files}) + "\\n")
"""

POOL_TEMPLATE = (
    "{% for np in node_pools %}{{ np.name }}:{% for n in np.nodes %}{{ n.name }},{% endfor %}\n{% endfor %}"
    "lbs={{ metadata.get('load_balancers', [])|length }}\n"
)


class Harness:
    def __init__(self, root: Path):
        templates = root / "templates"
        templates.mkdir()
        (templates / "backend.tpl").write_text("backend {{ cluster_name }}\n")
        (templates / "providers.tpl").write_text("hetzner={{ hetzner }}\n")
        (templates / "hetzner.tpl").write_text(POOL_TEMPLATE)
        self.output = root / "clusters"
        self.ips_path = root / "ips.json"
        self.log_path = root / "log.jsonl"
        script = root / "fake_terraform.py"
        script.write_text(FAKE_TERRAFORM)
        self.factory = functools.partial(
            ClusterBuilder,
            output_dir=self.output,
            loader=TemplateLoader(templates),
            backend_settings=BackendSettings(),
            terraform_executable=(sys.executable, str(script), str(self.ips_path), str(self.log_path)),
        )

    def set_ips(self, ips):
        self.ips_path.write_text(json.dumps(ips))

    def entries(self):
        return [json.loads(line) for line in self.log_path.read_text().splitlines()]


@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)


def make_cluster(name="cluster1", cluster_hash="abcdef", nodes=None, count=1):
    provider = Provider(spec_name="hetzner-1", cloud_provider_name="hetzner", credentials="api-token")
    pool = NodePool(name="workers", provider=provider, region="Autralia", count=count, nodes=nodes or [])
    return K8sCluster(
        cluster_info=ClusterInfo(name=name, hash=cluster_hash, public_key="public-key", node_pools=[pool]),
        kubernetes="20.1",
        network="192.168.2.0/24",
        kubeconfig="ExampleKubeConfig",
    )


def test_cluster_id_prefers_desired_state():
    build = K8sClusterBuild(
        desired_k8s=make_cluster("desired", "h1"), current_k8s=make_cluster("current", "h2")
    )
    assert build.cluster_id() == "desired-h1"


def test_cluster_id_falls_back_to_current_state():
    build = K8sClusterBuild(current_k8s=make_cluster("current", "h2"))
    assert build.cluster_id() == "current-h2"


def test_cluster_id_without_state_raises():
    with pytest.raises(ValueError):
        K8sClusterBuild().cluster_id()


def test_build_fills_nodes_and_passes_load_balancers(harness):
    desired = make_cluster()
    lb = LBCluster(cluster_info=ClusterInfo(name="lb"))
    harness.set_ips({"workers": {"cluster1-abcdef-workers-1": "8.8.4.4"}})
    build = K8sClusterBuild(
        desired_k8s=desired, project_name="proj", load_balancers=[lb], builder_factory=harness.factory
    )
    build.build()

    nodes = desired.cluster_info.node_pools[0].nodes
    assert [(n.name, n.public) for n in nodes] == [("cluster1-abcdef-workers-1", "8.8.4.4")]
    entries = harness.entries()
    assert [e["command"] for e in entries] == ["init", "apply"]
    tf = entries[-1]["files"][f"{build.cluster_id()}-hetzner-1.tf"]
    assert "lbs=1" in tf
    assert "workers:cluster1-abcdef-workers-1," in tf


def test_build_keeps_private_ip_of_current_nodes(harness):
    existing = [Node("n1", public="8.8.4.4", private="10.0.0.9")]
    desired = make_cluster(nodes=[Node("n1")])
    current = make_cluster(nodes=existing)
    harness.set_ips({"workers": {"n1": "8.8.4.4"}})
    K8sClusterBuild(desired_k8s=desired, current_k8s=current, builder_factory=harness.factory).build()
    assert desired.cluster_info.node_pools[0].nodes[0].private == "10.0.0.9"


def test_destroy_runs_terraform_destroy(harness):
    current = make_cluster(nodes=[Node("n1", public="8.8.4.4")])
    build = K8sClusterBuild(current_k8s=current, builder_factory=harness.factory)
    build.destroy()
    entries = harness.entries()
    assert [e["command"] for e in entries] == ["init", "destroy"]
    assert "lbs=0" in entries[-1]["files"][f"{build.cluster_id()}-hetzner-1.tf"]
    assert not (harness.output / build.cluster_id()).exists()


def test_build_without_desired_state_raises(harness):
    with pytest.raises(ValueError):
        K8sClusterBuild(current_k8s=make_cluster(), builder_factory=harness.factory).build()


def test_destroy_without_current_state_raises(harness):
    with pytest.raises(ValueError):
        K8sClusterBuild(desired_k8s=make_cluster(), builder_factory=harness.factory).destroy()