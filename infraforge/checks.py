"""Checks on stored configurations and test manifests."""

from __future__ import annotations

import base64
from typing import Any

import yaml

from .model import Config, K8sCluster, WorkflowStatus


class ConfigStateError(RuntimeError):
    """One or more clusters of a configuration ended in an error state."""

    def __init__(self, message: str, clusters: list[str]):
        super().__init__(message)
        self.clusters = clusters


def checksums_equal(first: bytes | None, second: bytes | None) -> bool:
    """Return True when both checksums are non-empty and equal."""
    return bool(first) and bool(second) and first == second


def config_error(config: Config) -> ConfigStateError | None:
    """Return an error describing every cluster in error state, or None."""
    failed = [
        (name, state)
        for name, state in config.state.items()
        if state.status is WorkflowStatus.ERROR
    ]
    if not failed:
        return None
    parts = [
        f"----\nerror in cluster {name}\n----\n"
        f"Stage: {state.stage}\nState: {state.status.value}\nDescription: {state.description}"
        for name, state in failed
    ]
    return ConfigStateError("\n".join(parts), [name for name, _ in failed])


def autoscaled_clusters(config: Config) -> list[K8sCluster]:
    """Return the current clusters that have an autoscaled node pool."""
    return [
        cluster
        for cluster in config.current_clusters
        if any(pool.autoscaled for pool in cluster.cluster_info.node_pools)
    ]


def manifest_name(yaml_bytes: bytes | str) -> str:
    """Return the name defined in a manifest, used as its database id."""
    try:
        document: Any = yaml.safe_load(yaml_bytes)
    except yaml.YAMLError as err:
        raise ValueError(f"error while unmarshalling a manifest file: {err}") from err
    name = document.get("name") if isinstance(document, dict) else None
    if not name:
        raise ValueError("manifest does not have a name defined, which could be used as DB id")
    return str(name)


def secret_data(manifest: bytes, secret_name: str, namespace: str) -> dict[str, str]:
    """Return the values for a secret that carries the manifest."""
    return {
        "secret_name": secret_name,
        "namespace": namespace,
        "field_name": secret_name,
        "manifest": base64.b64encode(manifest).decode("ascii"),
    }