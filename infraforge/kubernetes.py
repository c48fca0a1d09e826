"""Building and destroying the infrastructure of a Kubernetes cluster."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .cluster_builder import ClusterBuilder
from .model import ClusterType, K8sCluster, LBCluster

log = logging.getLogger(__name__)


@dataclass
class K8sClusterBuild:
    """Desired and current state of one Kubernetes cluster."""

    desired_k8s: K8sCluster | None = None
    current_k8s: K8sCluster | None = None
    project_name: str = ""
    load_balancers: list[LBCluster] = field(default_factory=list)
    builder_factory: Callable[..., ClusterBuilder] = ClusterBuilder

    def cluster_id(self) -> str:
        """Return the id of the desired state, or of the current one."""
        state = self.desired_k8s if self.desired_k8s is not None else self.current_k8s
        if state is None:
            raise ValueError("cluster has neither a desired nor a current state")
        return state.cluster_info.cluster_id()

    def build(self) -> None:
        """Create the cluster's node pools."""
        if self.desired_k8s is None:
            raise ValueError("a desired state is required to build the cluster")
        current_info = self.current_k8s.cluster_info if self.current_k8s is not None else None
        builder = self.builder_factory(
            desired_info=self.desired_k8s.cluster_info,
            current_info=current_info,
            project_name=self.project_name,
            cluster_type=ClusterType.K8S,
            metadata={"load_balancers": self.load_balancers},
        )
        try:
            builder.create_nodepools()
        except Exception:
            log.error("error while creating the K8s cluster %s", self.desired_k8s.cluster_info.name)
            raise

    def destroy(self) -> None:
        """Destroy the cluster's current node pools."""
        if self.current_k8s is None:
            raise ValueError("a current state is required to destroy the cluster")
        builder = self.builder_factory(
            current_info=self.current_k8s.cluster_info,
            project_name=self.project_name,
            cluster_type=ClusterType.K8S,
        )
        try:
            builder.destroy_nodepools()
        except Exception:
            log.error("error while destroying the K8s cluster %s", self.current_k8s.cluster_info.name)
            raise