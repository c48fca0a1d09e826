"""DNS records and infrastructure of load-balancer clusters."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .backend import Backend, BackendSettings
from .cluster_builder import OUTPUT_DIR, ClusterBuilder
from .model import DNS, ClusterType, LBCluster, NodePool, Provider
from .provider import ProviderFiles
from .templates import TemplateLoader, render_to_file, write_key_file
from .terraform import Terraform

log = logging.getLogger(__name__)


@dataclass
class DNSData:
    """Values handed to the DNS template of a provider."""

    cluster_name: str
    cluster_hash: str
    hostname_hash: str
    dns_zone: str
    node_ips: list[str]
    provider: Provider


def validate_domain(domain: str) -> str:
    """Strip the trailing dot of a fully qualified domain name."""
    return domain[:-1] if domain.endswith(".") else domain


def read_domain(data: str) -> dict[str, str]:
    """Parse the JSON object terraform prints for the DNS output."""
    parsed = json.loads(data)
    if not isinstance(parsed, dict):
        raise ValueError("terraform output is not a JSON object")
    if not all(isinstance(value, str) for value in parsed.values()):
        raise ValueError("terraform output holds values that are not strings")
    return parsed


def node_ips(nodepools: Iterable[NodePool]) -> list[str]:
    """Return the public IPs of every node of the node pools, in order."""
    return [node.public for pool in nodepools for node in pool.nodes]


def _changed_dns_provider(current: DNS | None, desired: DNS | None) -> bool:
    if current is None or desired is None:
        return False
    return (
        current.provider.spec_name != desired.provider.spec_name
        or current.dns_zone != desired.dns_zone
    )


def _remove_dir(directory: Path) -> None:
    if directory.exists():
        shutil.rmtree(directory)


@dataclass
class DNSRecords:
    """Creates or destroys the DNS records pointing at a load-balancer cluster."""

    cluster_name: str
    cluster_hash: str
    project_name: str = ""
    desired_node_ips: list[str] = field(default_factory=list)
    current_node_ips: list[str] = field(default_factory=list)
    current_dns: DNS | None = None
    desired_dns: DNS | None = None
    output_dir: Path = OUTPUT_DIR
    loader: TemplateLoader = field(default_factory=TemplateLoader)
    backend_settings: BackendSettings = field(default_factory=BackendSettings.from_env)
    terraform_executable: Sequence[str] = ("terraform",)

    @property
    def _cluster_id(self) -> str:
        return f"{self.cluster_name}-{self.cluster_hash}"

    def _terraform(self, directory: Path) -> Terraform:
        stream = None if log.isEnabledFor(logging.DEBUG) else subprocess.DEVNULL
        return Terraform(
            directory=directory,
            stdout=stream,
            stderr=stream,
            executable=tuple(self.terraform_executable),
        )

    def create(self) -> str:
        """Set up the desired DNS records and return the endpoint they resolve."""
        if self.desired_dns is None:
            raise ValueError("a desired DNS is required to create DNS records")
        cluster_id = self._cluster_id
        dns_id = f"{cluster_id}-dns"
        dns_dir = Path(self.output_dir) / dns_id
        terraform = self._terraform(dns_dir)

        if _changed_dns_provider(self.current_dns, self.desired_dns):
            assert self.current_dns is not None
            log.info(
                "Destroying old DNS records for %s from cluster %s",
                self.current_dns.endpoint,
                self.cluster_name,
            )
            self._generate_files(dns_id, dns_dir, self.current_dns, self.current_node_ips)
            terraform.init()
            terraform.destroy()
            _remove_dir(dns_dir)

        log.info(
            "Creating new DNS records for %s from cluster %s",
            self.desired_dns.endpoint,
            self.cluster_name,
        )
        self._generate_files(dns_id, dns_dir, self.desired_dns, self.desired_node_ips)
        terraform.init()
        terraform.apply()

        domains = read_domain(terraform.output(cluster_id))
        output_id = f"{cluster_id}-endpoint"
        if output_id not in domains:
            raise ValueError(f"terraform output for {cluster_id} has no {output_id}")

        log.info(
            "DNS records for %s from cluster %s were successfully set up",
            self.desired_dns.endpoint,
            self.cluster_name,
        )
        _remove_dir(dns_dir)
        return validate_domain(domains[output_id])

    def destroy(self) -> None:
        """Remove the current DNS records."""
        if self.current_dns is None:
            raise ValueError("a current DNS is required to destroy DNS records")
        log.info(
            "Destroying DNS records for %s from cluster %s",
            self.current_dns.endpoint,
            self.cluster_name,
        )
        dns_id = f"{self._cluster_id}-dns"
        dns_dir = Path(self.output_dir) / dns_id

        self._generate_files(dns_id, dns_dir, self.current_dns, self.current_node_ips)

        terraform = self._terraform(dns_dir)
        terraform.init()
        terraform.destroy()
        log.info(
            "DNS records for %s from cluster %s were successfully destroyed",
            self.current_dns.endpoint,
            self.cluster_name,
        )
        _remove_dir(dns_dir)

    def _generate_files(
        self, dns_id: str, dns_dir: Path, dns: DNS, ips: list[str]
    ) -> None:
        Backend(
            project_name=self.project_name,
            cluster_name=dns_id,
            directory=dns_dir,
            settings=self.backend_settings,
            loader=self.loader,
        ).create_files()

        ProviderFiles(
            project_name=self.project_name,
            cluster_name=dns_id,
            directory=dns_dir,
            loader=self.loader,
        ).create_provider_dns(dns)

        write_key_file(dns.provider.credentials, dns_dir, dns.provider.spec_name)

        provider_name = dns.provider.cloud_provider_name
        template = self.loader.load_template(f"{provider_name}-dns.tpl")
        render_to_file(
            template,
            dns_dir,
            f"{provider_name}-dns.tf",
            DNSData(
                cluster_name=self.cluster_name,
                cluster_hash=self.cluster_hash,
                hostname_hash=dns.hostname,
                dns_zone=dns.dns_zone,
                node_ips=list(ips),
                provider=dns.provider,
            ),
        )


@dataclass
class LBClusterBuild:
    """Desired and current state of one load-balancer cluster."""

    desired_lb: LBCluster | None = None
    current_lb: LBCluster | None = None
    project_name: str = ""
    builder_factory: Callable[..., Any] = ClusterBuilder
    dns_factory: Callable[..., Any] = DNSRecords

    def cluster_id(self) -> str:
        """Return the id of the desired state, or of the current one."""
        state = self.desired_lb if self.desired_lb is not None else self.current_lb
        if state is None:
            raise ValueError("cluster has neither a desired nor a current state")
        return state.cluster_info.cluster_id()

    def build(self) -> None:
        """Create the node pools and DNS records, and store the new endpoint."""
        desired = self.desired_lb
        if desired is None:
            raise ValueError("a desired state is required to build the cluster")
        if desired.dns is None:
            raise ValueError(f"load balancer {desired.cluster_info.name} has no DNS")

        current_info = None
        current_dns = None
        current_ips: list[str] = []
        if self.current_lb is not None:
            current_info = self.current_lb.cluster_info
            current_dns = self.current_lb.dns
            current_ips = node_ips(self.current_lb.cluster_info.node_pools)

        builder = self.builder_factory(
            desired_info=desired.cluster_info,
            current_info=current_info,
            project_name=self.project_name,
            cluster_type=ClusterType.LB,
            metadata={"roles": desired.roles},
        )
        try:
            builder.create_nodepools()
        except Exception:
            log.error("error while creating the LB cluster %s", desired.cluster_info.name)
            raise

        records = self.dns_factory(
            cluster_name=desired.cluster_info.name,
            cluster_hash=desired.cluster_info.hash,
            project_name=self.project_name,
            desired_node_ips=node_ips(desired.cluster_info.node_pools),
            current_node_ips=current_ips,
            current_dns=current_dns,
            desired_dns=desired.dns,
        )
        try:
            endpoint = records.create()
        except Exception:
            log.error("error while creating the DNS for %s", desired.cluster_info.name)
            raise
        desired.dns.endpoint = endpoint

    def destroy(self) -> None:
        """Destroy the node pools and the DNS records at the same time."""
        current = self.current_lb
        if current is None:
            raise ValueError("a current state is required to destroy the cluster")

        builder = self.builder_factory(
            current_info=current.cluster_info,
            project_name=self.project_name,
            cluster_type=ClusterType.LB,
        )
        records = self.dns_factory(
            cluster_name=current.cluster_info.name,
            cluster_hash=current.cluster_info.hash,
            project_name=self.project_name,
            current_node_ips=node_ips(current.cluster_info.node_pools),
            current_dns=current.dns,
        )
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(builder.destroy_nodepools),
                pool.submit(records.destroy),
            ]
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error