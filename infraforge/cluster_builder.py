"""Building and destroying the node pools of a cluster with terraform."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import shutil
import subprocess
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .backend import Backend, BackendSettings
from .model import SUBNET_CIDR_KEY, ClusterInfo, ClusterType, Node, NodePool, NodeType
from .provider import ProviderFiles
from .templates import TemplateLoader, render_to_file, write_key_file
from .terraform import Terraform

log = logging.getLogger(__name__)

OUTPUT_DIR = Path(os.environ.get("TERRAFORMER_OUTPUT", "clusters"))
SUBNET_CIDR_KEY_TEMPLATE = "{}-subnet-cidr"
BASE_SUBNET_CIDR = "10.0.0.0/24"
DEFAULT_OCTET_TO_CHANGE = 2
PUBLIC_KEY_FILE = "public.pem"


@dataclass
class NodepoolsData:
    """Values handed to the node pool templates of one provider."""

    cluster_name: str
    cluster_hash: str
    node_pools: list[NodePool] = field(default_factory=list)
    metadata: dict[str, Any] | None = field(default_factory=dict)
    regions: list[str] = field(default_factory=list)


def get_cidr(base_cidr: str, position: int, existing: Collection[str]) -> str:
    """Return the first CIDR derived from ``base_cidr`` by changing the byte at
    ``position`` that is not among ``existing``."""
    try:
        network = ipaddress.ip_network(base_cidr, strict=False)
    except ValueError as err:
        raise ValueError(
            f"cannot parse a CIDR with base {base_cidr}, position {position}"
        ) from err
    octets = bytearray(network.network_address.packed)
    if not 0 <= position < len(octets):
        raise ValueError(f"position {position} is outside of the address {base_cidr}")
    for value in range(256):
        octets[position] = value
        candidate = f"{ipaddress.ip_address(bytes(octets))}/{network.prefixlen}"
        if candidate not in existing:
            return candidate
    raise ValueError("maximum number of IPs assigned")


def calculate_cidrs(base_cidr: str, nodepools: Iterable[NodePool]) -> None:
    """Give every node pool without a subnet CIDR a free one."""
    pools = list(nodepools)
    taken = {pool.subnet_cidr() for pool in pools if SUBNET_CIDR_KEY in pool.metadata}
    for pool in pools:
        if pool.subnet_cidr():
            continue
        try:
            cidr = get_cidr(base_cidr, DEFAULT_OCTET_TO_CHANGE, taken)
        except ValueError as err:
            raise ValueError(f"failed to parse CIDR for nodepool {pool.name} : {err}") from err
        log.debug("Calculating new VPC subnet CIDR for nodepool %s. New CIDR [%s]", pool.name, cidr)
        pool.metadata[SUBNET_CIDR_KEY] = cidr
        taken.add(cidr)


def read_ips(data: str) -> dict[str, Any]:
    """Parse the JSON object terraform prints for a node pool output."""
    parsed = json.loads(data)
    if not isinstance(parsed, dict):
        raise ValueError("terraform output is not a JSON object")
    return parsed


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def fill_nodes(ips: Mapping[str, Any], nodepool: NodePool, old_nodes: Sequence[Node]) -> None:
    """Replace the pool's nodes with the ones from terraform output, sorted by
    name, keeping the private IP and type of nodes that existed before."""
    default_type = NodeType.MASTER if nodepool.is_control else NodeType.WORKER
    nodes = []
    for name in sorted(ips):
        public = _as_text(ips[name])
        previous = next(
            (old for old in old_nodes if old.public == public and old.name == name), None
        )
        nodes.append(
            Node(
                name=name,
                public=public,
                private=previous.private if previous else "",
                node_type=previous.node_type if previous else default_type,
            )
        )
    nodepool.nodes = nodes


def unique_node_name(nodepool_id: str, existing_names: Collection[str]) -> str:
    """Return ``<nodepool_id>-<n>`` with the smallest n not already in use."""
    index = 1
    while f"{nodepool_id}-{index}" in existing_names:
        index += 1
    return f"{nodepool_id}-{index}"


def template_suffix(cluster_type: ClusterType) -> str:
    """Return the template file suffix for the cluster type."""
    if cluster_type is ClusterType.K8S:
        return ".tpl"
    if cluster_type is ClusterType.LB:
        return "-lb.tpl"
    return ""


def copy_cidrs_to_metadata(data: NodepoolsData) -> None:
    """Expose each node pool's subnet CIDR in the template metadata."""
    if data.metadata is None:
        data.metadata = {}
    for pool in data.node_pools:
        data.metadata[SUBNET_CIDR_KEY_TEMPLATE.format(pool.name)] = pool.subnet_cidr()


def _group_by_provider_region(info: ClusterInfo) -> dict[str, list[NodePool]]:
    groups: dict[str, list[NodePool]] = {}
    for pool in info.node_pools:
        groups.setdefault(f"{pool.provider.spec_name}-{pool.region}", []).append(pool)
    return groups


def _group_by_provider_spec(info: ClusterInfo) -> dict[str, list[NodePool]]:
    groups: dict[str, list[NodePool]] = {}
    for pool in info.node_pools:
        groups.setdefault(pool.provider.spec_name, []).append(pool)
    return groups


def _regions(pools: Iterable[NodePool]) -> list[str]:
    return list(dict.fromkeys(pool.region for pool in pools))


def _remove_dir(directory: Path) -> None:
    if directory.exists():
        shutil.rmtree(directory)


@dataclass
class ClusterBuilder:
    """Builds or destroys the node pools of one cluster."""

    desired_info: ClusterInfo | None = None
    current_info: ClusterInfo | None = None
    project_name: str = ""
    cluster_type: ClusterType = ClusterType.K8S
    metadata: dict[str, Any] | None = None
    output_dir: Path = OUTPUT_DIR
    loader: TemplateLoader = field(default_factory=TemplateLoader)
    backend_settings: BackendSettings = field(default_factory=BackendSettings.from_env)
    terraform_executable: Sequence[str] = ("terraform",)

    def _terraform(self, directory: Path) -> Terraform:
        stream = None if log.isEnabledFor(logging.DEBUG) else subprocess.DEVNULL
        return Terraform(
            directory=directory,
            stdout=stream,
            stderr=stream,
            executable=tuple(self.terraform_executable),
        )

    def create_nodepools(self) -> None:
        """Create the desired node pools and fill in their nodes."""
        if self.desired_info is None:
            raise ValueError("desired cluster info is required to create node pools")
        cluster_id = self.desired_info.cluster_id()
        cluster_dir = Path(self.output_dir) / cluster_id

        for pools in _group_by_provider_region(self.desired_info).values():
            calculate_cidrs(BASE_SUBNET_CIDR, pools)

        self._generate_files(cluster_id, cluster_dir)

        terraform = self._terraform(cluster_dir)
        terraform.init()
        terraform.apply()

        old_nodes = self.current_nodes()
        for pool in self.desired_info.node_pools:
            fill_nodes(read_ips(terraform.output(pool.name)), pool, old_nodes)

        _remove_dir(cluster_dir)

    def destroy_nodepools(self) -> None:
        """Destroy the current node pools."""
        if self.current_info is None:
            raise ValueError("current cluster info is required to destroy node pools")
        cluster_id = self.current_info.cluster_id()
        cluster_dir = Path(self.output_dir) / cluster_id

        for pools in _group_by_provider_region(self.current_info).values():
            calculate_cidrs(BASE_SUBNET_CIDR, pools)

        self._generate_files(cluster_id, cluster_dir)

        terraform = self._terraform(cluster_dir)
        terraform.init()
        terraform.destroy()

        _remove_dir(cluster_dir)

    def current_nodes(self) -> list[Node]:
        """Return every node of the current state."""
        if self.current_info is None:
            return []
        return [node for pool in self.current_info.node_pools for node in pool.nodes]

    def _generate_files(self, cluster_id: str, cluster_dir: Path) -> None:
        Backend(
            project_name=self.project_name,
            cluster_name=cluster_id,
            directory=cluster_dir,
            settings=self.backend_settings,
            loader=self.loader,
        ).create_files()

        info = self.desired_info if self.desired_info is not None else self.current_info
        if info is None:
            raise ValueError("no cluster info to generate files from")

        ProviderFiles(
            project_name=self.project_name,
            cluster_name=cluster_id,
            directory=cluster_dir,
            loader=self.loader,
        ).create_provider(info)

        suffix = template_suffix(self.cluster_type)

        for pool in info.node_pools:
            nodes = pool.nodes[: max(pool.count, 0)]
            for node in nodes:
                log.debug("Cluster %s, Nodepool %s is reusing node %s", cluster_id, pool.name, node.name)
            names = {node.name for node in nodes}
            nodepool_id = f"{cluster_id}-{pool.name}"
            while len(nodes) < pool.count:
                name = unique_node_name(nodepool_id, names)
                names.add(name)
                nodes.append(Node(name=name))
            pool.nodes = nodes

        for spec_name, pools in _group_by_provider_spec(info).items():
            data = NodepoolsData(
                cluster_name=info.name,
                cluster_hash=info.hash,
                node_pools=pools,
                metadata=dict(self.metadata) if self.metadata is not None else None,
                regions=_regions(pools),
            )
            copy_cidrs_to_metadata(data)

            template = self.loader.load_template(
                f"{pools[0].provider.cloud_provider_name}{suffix}"
            )
            render_to_file(template, cluster_dir, f"{cluster_id}-{spec_name}.tf", data)

            write_key_file(info.public_key, cluster_dir, PUBLIC_KEY_FILE)
            write_key_file(pools[0].provider.credentials, cluster_dir, spec_name)