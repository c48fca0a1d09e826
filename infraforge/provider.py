"""Generation of the terraform providers configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .model import DNS, ClusterInfo
from .templates import TemplateLoader, render_to_file

PROVIDERS_TEMPLATE = "providers.tpl"
PROVIDERS_FILE = "providers.tf"

_CLOUD_FLAGS = {
    "gcp": "gcp",
    "hetzner": "hetzner",
    "aws": "aws",
    "oci": "oci",
    "azure": "azure",
}
_DNS_FLAGS = {**_CLOUD_FLAGS, "cloudflare": "cloudflare", "hetznerdns": "hetzner_dns"}


@dataclass
class ProviderFlags:
    """Which providers the generated configuration needs."""

    gcp: bool = False
    hetzner: bool = False
    aws: bool = False
    oci: bool = False
    azure: bool = False
    cloudflare: bool = False
    hetzner_dns: bool = False


def providers_used(cluster_info: ClusterInfo) -> ProviderFlags:
    """Return the cloud providers used by the cluster's node pools."""
    flags = ProviderFlags()
    for pool in cluster_info.node_pools:
        attr = _CLOUD_FLAGS.get(pool.provider.cloud_provider_name)
        if attr:
            setattr(flags, attr, True)
    return flags


def dns_provider_flags(dns: DNS | None) -> ProviderFlags:
    """Return the provider needed for the DNS records, if any."""
    flags = ProviderFlags()
    if dns is None:
        return flags
    attr = _DNS_FLAGS.get(dns.provider.cloud_provider_name)
    if attr:
        setattr(flags, attr, True)
    return flags


@dataclass
class ProviderFiles:
    """Writes providers.tf for one cluster directory."""

    project_name: str
    cluster_name: str
    directory: str | os.PathLike[str]
    loader: TemplateLoader = field(default_factory=TemplateLoader)

    def create_provider(self, cluster_info: ClusterInfo) -> Path:
        """Render providers.tf for the cluster's node pools."""
        template = self.loader.load_template(PROVIDERS_TEMPLATE)
        return render_to_file(
            template, self.directory, PROVIDERS_FILE, providers_used(cluster_info)
        )

    def create_provider_dns(self, dns: DNS | None) -> Path:
        """Render providers.tf for a DNS provider."""
        template = self.loader.load_template(PROVIDERS_TEMPLATE)
        return render_to_file(
            template, self.directory, PROVIDERS_FILE, dns_provider_flags(dns)
        )