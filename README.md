# infraforge

infraforge renders Terraform configuration for cloud clusters from Jinja2
templates and runs `terraform` to create or tear them down. It covers:

- nodepools for Kubernetes and load-balancer clusters, with stable VPC subnet
  CIDRs and unique node names;
- the state backend (`backend.tf`) and the provider block (`providers.tf`);
- DNS records that point at load-balancer clusters;
- helpers for checking a stored configuration: checksum comparison,
  collection of clusters in error state, finding autoscaled clusters and
  reading a manifest's name.

The `terraform` binary has to be on `PATH` for builds and teardowns.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## What the package does not include

- **Templates.** No Terraform templates ship with the package. `TemplateLoader`
  reads them from the directory named by the `TERRAFORMER_TEMPLATES`
  environment variable (default `templates/terraformer`). A build needs
  `backend.tpl`, `providers.tpl`, one `<cloud>.tpl` (Kubernetes) or
  `<cloud>-lb.tpl` (load balancer) for each cloud provider in use, and
  `<provider>-dns.tpl` for DNS records.
- **Service and command line.** There is no server, remote client or command
  to run. Everything is driven from Python.
- **Storage.** Configurations are not stored anywhere. `infraforge.checks`
  only inspects `Config` objects that you supply.

## Data model

`infraforge.model` holds plain dataclasses: `Provider`, `Node`, `NodePool`,
`ClusterInfo`, `DNS`, `Role`, `K8sCluster`, `LBCluster`, `ClusterState` and
`Config`, along with the enums `NodeType`, `ClusterType` and
`WorkflowStatus`.

- `ClusterInfo.cluster_id()` returns `<name>-<hash>`.
- `NodePool.subnet_cidr()` returns the CIDR stored under the
  `VPC_SUBNET_CIDR` metadata key, or `""` if there is none.

## Building a Kubernetes cluster

```python
from infraforge.model import ClusterInfo, K8sCluster, NodePool, Provider
from infraforge.kubernetes import K8sClusterBuild

provider = Provider(spec_name="hetzner-1", cloud_provider_name="hetzner",
                    credentials="token")
info = ClusterInfo(
    name="cluster1",
    hash="abcdef",
    public_key="public-key",
    node_pools=[NodePool(name="control", provider=provider, region="fsn1",
                         count=1, is_control=True)],
)
build = K8sClusterBuild(desired_k8s=K8sCluster(cluster_info=info),
                        project_name="demo")
print(build.cluster_id())   # cluster1-abcdef
build.build()               # terraform init + apply; nodes get their IPs
```

`build()` hands the templates `{"load_balancers": ...}` as metadata.
`destroy()` tears down the infrastructure of `current_k8s`. Both raise
`ValueError` if the state they need is missing.

### How `ClusterBuilder` works

`infraforge.cluster_builder.ClusterBuilder` is the class that does the work.
`create_nodepools()` and `destroy_nodepools()` go through these steps:

1. Give every nodepool without a subnet CIDR a free one. Nodepools are grouped
   by provider and region. CIDRs are derived from `10.0.0.0/24` by changing
   the third octet.
2. Write `backend.tf`, `providers.tf`, one `<cluster_id>-<spec_name>.tf` per
   provider spec, `public.pem`, and a credentials file named after each
   provider spec. All of these go into `<output_dir>/<cluster_id>`. The
   output directory comes from `TERRAFORMER_OUTPUT` (default `clusters`).
   Existing nodes are reused up to the nodepool's `count`. New nodes are
   named `<cluster_id>-<pool>-<n>`.
3. Run `terraform init` followed by `apply` or `destroy`.
4. When creating, read each nodepool's JSON output. Nodes are filled in sorted
   by name. A node that already existed with the same name and public IP keeps
   its private IP and its type.
5. Remove the working directory.

Terraform output is shown only when logging is at DEBUG level. Otherwise it is
discarded.

The helper functions can be used on their own: `get_cidr`, `calculate_cidrs`,
`read_ips`, `fill_nodes`, `unique_node_name`, `template_suffix` and
`copy_cidrs_to_metadata`.

Templates receive the fields of `NodepoolsData` as variables:
`cluster_name`, `cluster_hash`, `node_pools`, `metadata` and `regions`.
Each nodepool's CIDR is also placed in `metadata` under `<pool>-subnet-cidr`.

## Load balancers and DNS

`infraforge.loadbalancer.LBClusterBuild`:

- `build()` creates the load-balancer nodepools, passing
  `{"roles": ...}` as metadata.
- It then creates the DNS records with `DNSRecords` and writes the resulting
  endpoint into the desired `DNS.endpoint`.
- `destroy()` removes the nodepools and the DNS records concurrently. If
  either part fails, its error is raised.

`DNSRecords.create()` behaves as follows:

- If the DNS provider spec or the zone has changed, it first destroys the old
  records.
- It reads the `<cluster_id>-endpoint` value from terraform output and returns
  it with any trailing dot removed.

DNS templates receive the fields of `DNSData`: `cluster_name`,
`cluster_hash`, `hostname_hash`, `dns_zone`, `node_ips` and `provider`.

Helpers:

- `validate_domain` strips a trailing dot.
- `read_domain` parses the output JSON.
- `node_ips` lists the public IPs of every node.

## Lower-level pieces

- `infraforge.terraform`: `Terraform` with `init()`, `apply()`, `destroy()`
  and `output(resource_name)`. A failed `init`, `apply` or `destroy` is
  retried up to 10 more times through `run_with_retries`, with a growing
  delay between attempts. `TerraformError` is raised once the retries run
  out. `output()` returns the combined stdout and stderr, and raises
  `TerraformError` on a non-zero exit.
- `infraforge.backend`: `Backend.create_files()` writes `backend.tf`.
  `BackendSettings.from_env()` reads `MINIO_URL`, `MINIO_ACCESS_KEY`,
  `MINIO_SECRET_KEY`, `DYNAMO_URL` and `DYNAMO_TABLE`.
- `infraforge.provider`: `ProviderFiles` (`create_provider`,
  `create_provider_dns`), `providers_used`, `dns_provider_flags` and the
  `ProviderFlags` dataclass, whose fields are the template variables:
  `gcp`, `hetzner`, `aws`, `oci`, `azure`, `cloudflare` and `hetzner_dns`.
- `infraforge.templates`: `TemplateLoader.load_template` (Jinja2 with strict
  undefined variables), `render_to_string`, `render_to_file` and
  `write_key_file`. `write_key_file` writes with mode `0600`.
- `infraforge.checks`:
  - `checksums_equal` is true only for equal, non-empty checksums.
  - `config_error` returns a `ConfigStateError` listing the clusters in
    `ERROR` state, or `None` if there are none.
  - `autoscaled_clusters` returns the current clusters that have an autoscaled
    nodepool.
  - `manifest_name` reads the `name` of a YAML manifest and raises
    `ValueError` if it is missing.
  - `secret_data` returns the values for a secret that carries a
    base64-encoded manifest.