"""Data model describing clusters, node pools and configuration state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

SUBNET_CIDR_KEY = "VPC_SUBNET_CIDR"


class NodeType(IntEnum):
    """Role of a node inside a cluster."""

    WORKER = 0
    MASTER = 1


class ClusterType(Enum):
    """Kind of cluster being built."""

    K8S = "k8s"
    LB = "lb"


class WorkflowStatus(Enum):
    """Status of a cluster's workflow."""

    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass
class Provider:
    """A cloud or DNS provider with its credentials."""

    spec_name: str
    cloud_provider_name: str
    credentials: str = ""


@dataclass
class Node:
    """A single machine of a node pool."""

    name: str
    public: str = ""
    private: str = ""
    node_type: NodeType = NodeType.WORKER


@dataclass
class NodePool:
    """A group of identical nodes hosted by one provider in one region."""

    name: str
    provider: Provider
    region: str = ""
    zone: str = ""
    server_type: str = ""
    image: str = ""
    storage_disk_size: int = 0
    count: int = 0
    is_control: bool = False
    autoscaled: bool = False
    nodes: list[Node] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    def subnet_cidr(self) -> str:
        """Return the VPC subnet CIDR assigned to this pool, or an empty string."""
        return self.metadata.get(SUBNET_CIDR_KEY) or ""


@dataclass
class ClusterInfo:
    """Information shared by every kind of cluster."""

    name: str
    hash: str = ""
    public_key: str = ""
    private_key: str = ""
    node_pools: list[NodePool] = field(default_factory=list)

    def cluster_id(self) -> str:
        """Return the identifier built from the name and the hash."""
        return f"{self.name}-{self.hash}"


@dataclass
class DNS:
    """DNS record settings of a load-balancer cluster."""

    dns_zone: str
    provider: Provider
    hostname: str = ""
    endpoint: str = ""


@dataclass
class Role:
    """A load-balancing role."""

    name: str
    port: int
    target_port: int
    target: str = ""


@dataclass
class K8sCluster:
    """A Kubernetes cluster."""

    cluster_info: ClusterInfo
    kubernetes: str = ""
    network: str = ""
    kubeconfig: str = ""


@dataclass
class LBCluster:
    """A load-balancer cluster attached to a Kubernetes cluster."""

    cluster_info: ClusterInfo
    roles: list[Role] = field(default_factory=list)
    dns: DNS | None = None
    target_k8s: str = ""


@dataclass
class ClusterState:
    """Workflow state of one cluster."""

    status: WorkflowStatus = WorkflowStatus.IN_PROGRESS
    stage: str = ""
    description: str = ""


@dataclass
class Config:
    """A stored configuration with its checksums and current state."""

    id: str = ""
    name: str = ""
    manifest: str = ""
    ms_checksum: bytes = b""
    cs_checksum: bytes = b""
    ds_checksum: bytes = b""
    current_clusters: list[K8sCluster] = field(default_factory=list)
    state: dict[str, ClusterState] = field(default_factory=dict)