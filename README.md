# cloudsweep

`cloudsweep` finds cloud resources older than a cut-off time and deletes them.
It is meant for sandbox and test accounts, where leftovers from experiments
pile up and cost money.

Supported resource kinds:

| Module                          | Resource                                              | Collection class    |
|---------------------------------|-------------------------------------------------------|---------------------|
| `cloudsweep.ecs_service`        | ECS services                                          | `ECSServices`       |
| `cloudsweep.eip`                | Elastic IP addresses                                  | `EIPAddresses`      |
| `cloudsweep.eks`                | EKS clusters (with node groups and Fargate profiles)  | `EKSClusters`       |
| `cloudsweep.elasticache`        | ElastiCache clusters                                  | `Elasticaches`      |
| `cloudsweep.elb`                | Classic load balancers                                | `LoadBalancers`     |
| `cloudsweep.elbv2`              | Application/network load balancers                    | `LoadBalancersV2`   |
| `cloudsweep.kms_customer_key`   | Customer-managed KMS keys (scheduled for deletion)    | `KmsCustomerKeys`   |
| `cloudsweep.lambda_function`    | Lambda functions                                      | `LambdaFunctions`   |
| `cloudsweep.launch_config`      | Auto Scaling launch configurations                    | `LaunchConfigs`     |
| `cloudsweep.nat_gateway`        | NAT gateways                                          | `NatGateways`       |
| `cloudsweep.oidc_provider`      | IAM OpenID Connect providers                          | `OIDCProviders`     |
| `cloudsweep.opensearch`         | OpenSearch domains                                    | `OpenSearchDomains` |
| `cloudsweep.rds`                | RDS DB instances                                      | `DBInstances`       |

## Installing

```
pip install cloudsweep
```

The package has no runtime dependencies. You pass in the service clients
yourself: any object with the usual service API methods (`describe_*`,
`delete_*`, `get_waiter`, …) returning plain dictionaries works, whether a
client you already use or a test double.

## How it works

Each module has two kinds of functions:

* `get_all_*` (for OpenSearch, `get_opensearch_domains_to_nuke`) lists
  resources and keeps the ones created before `exclude_after`. Several kinds
  also take a `ResourceFilter` to filter by name.
* `nuke_all_*` deletes the resources you name, waits for the deletion where
  the service allows it, logs what happened and returns the identifiers it
  deleted.

```python
from datetime import datetime, timedelta, timezone

from cloudsweep.common import ResourceFilter
from cloudsweep.elbv2 import get_all_elbv2_instances, nuke_all_elbv2_instances

cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
only_tests = ResourceFilter(include=(r"^sandbox-test-.*",))

arns = get_all_elbv2_instances(elbv2_client, cutoff, only_tests)
deleted = nuke_all_elbv2_instances(elbv2_client, "us-east-1", arns)
```

Each collection class also has a `nuke(session, identifiers)` method. It
takes any object with a `client(service_name)` method and a `region_name`
attribute, builds the client and calls the matching `nuke_all_*` function.

### Name filters

`ResourceFilter` holds tuples of include and exclude regular expressions;
`ResourceFilter.matches(name)` applies them. With no patterns every name
passes. A name that matches an exclude pattern is always dropped. When include
patterns exist, a name must match one of them. The module-level
`should_include(name, include_patterns, exclude_patterns)` applies the same
rule to plain pattern sequences. Passing `None` as a filter keeps every name.

### Resources without a creation time

Elastic IPs and OpenSearch domains do not report when they were created.
The first time cloudsweep sees one, it tags it with the key
`cloudsweep-first-seen` (`common.FIRST_SEEN_TAG_KEY`) and the current UTC
time. Later runs use that tag to decide whether the resource is old enough to
delete. Elastic IP tags are written as `YYYY-MM-DD HH:MM:SS`; OpenSearch tags
use `common.format_timestamp_tag` and are read back with
`common.parse_timestamp_tag`. A newly tagged OpenSearch domain is never
deleted in the same run.

### Batches and limits

Each collection class reports a `resource_name`, its `resource_identifiers`
and a `max_batch_size`. Callers should nuke identifiers in chunks of at most
that size; `common.split(items, size)` does the chunking. Kinds that delete in
parallel refuse more than 100 identifiers at once and raise an error instead:
`TooManyEKSClustersError`, `TooManyNatError`, `TooManyOIDCProvidersError` or
`TooManyOpenSearchDomainsError`.

### Errors

* Most `nuke_all_*` functions log a failed delete request and carry on with
  the rest. Where deletions run in parallel (EKS, KMS, NAT gateways, OIDC
  providers, OpenSearch), failures are raised together as an
  `ExceptionGroup`.
* `common.error_code(exc)` reads a service error code from an exception,
  either from its `code` attribute (as on `common.ApiError`) or from
  `exc.response["Error"]["Code"]`. It is used to recognise cases such as
  `LoadBalancerNotFound` or `NoSuchEntity`.
* `common.retry(action, description, max_attempts, sleep_between)` calls an
  action until it succeeds. If the action raises `common.FatalError`, the
  wrapped error is raised at once; if every attempt fails, `TimeoutError` is
  raised. NAT gateway and OpenSearch deletion use it to wait up to five
  minutes.
* `ElbDeleteError` is raised when classic load balancers are still present
  after 30 one-second polls.

## What this package does not do

* There is no command-line tool and no driver that walks regions or resource
  kinds for you: you create the clients and call the functions yourself.
* IAM users and RDS DB clusters are not covered.
* It does not create service clients or handle credentials.

## Running the tests

```
pip install -e ".[test]"
pytest
```