# imageupdater

Building blocks for keeping container images up to date: a table of registry
endpoints with YAML configuration and rate limiting, image tag lists with
semantic-version, date and name ordering, structured logging, and counters and
gauges that can be served in the Prometheus text format.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Registry endpoints

`imageupdater.endpoints` keeps a process-wide table of `RegistryEndpoint`
objects keyed by image prefix. Docker Hub (`docker.io`, API at
`https://registry-1.docker.io`, default namespace `library`) is configured out
of the box and is the default registry. Unknown prefixes are inferred on first
use with an API URL of `https://<prefix>` and a limit of 20 requests per second:

```python
from imageupdater.endpoints import get_registry_endpoint

hub = get_registry_endpoint("")           # the default registry
ghcr = get_registry_endpoint("ghcr.io")   # API at https://ghcr.io
```

`get_registry_endpoint("")` raises `LookupError` when no default registry is
set. Other functions: `add_registry_endpoint`, `new_registry_endpoint`,
`set_default_registry`, `get_default_registry`,
`set_registry_endpoint_credentials`, `configured_endpoints`,
`clear_registries` and `restore_default_registry_configuration`.

Each endpoint carries a `RateLimiter`; `limiter.take()` blocks so that at most
`limit` calls pass per second. A limit of zero or less disables limiting.
`RegistryEndpoint.session()` returns a `requests.Session` that honours proxy
settings from the environment and skips TLS verification for insecure
endpoints. `TagListSort.from_string` maps `latest-first`, `latest-last` and
`none` (or the empty string) to a sort mode and anything else to `UNKNOWN`.

## Configuration files

Registries can be loaded from YAML:

```yaml
registries:
- name: GitHub Container Registry
  api_url: https://ghcr.io
  prefix: ghcr.io
  credentials: env:GHCR_CREDS
  credsexpire: 5h
  tagsortmode: latest-first
  limit: 20
```

```python
from imageupdater.config import load_registry_configuration

load_registry_configuration("registries.yaml", True)
```

With the second argument set, previously configured endpoints are removed
first. `parse_registry_configuration` validates the same document from a
string and returns a `RegistryList`; it raises `ConfigurationError` on unknown
fields, a missing name, a missing API URL, more than one entry without a
prefix, or an unknown tag sort mode. Loading also raises `ConfigurationError`
when two entries are marked `default: true`. `credsexpire` takes durations such
as `3s`, `1h30m` or `1.5h`, parsed by `parse_duration`.

## Tags

```python
from datetime import datetime, timezone

from imageupdater.tag import ImageTag, ImageTagList

now = datetime.now(timezone.utc)
tags = ImageTagList()
for name in ["v1.0", "v2.0.0", "v1.0.1"]:
    tags.add(ImageTag(name, now))
print(tags.sort_by_semver().tags())   # ['v1.0', 'v1.0.1', 'v2.0.0']
```

`ImageTagList` keeps one tag per name. `sort_alphabetically`, `sort_by_date`
(ties broken by name) and `sort_by_semver` (tags that are not versions are left
out; equal versions are ordered by their text) return a `SortableImageTagList`.
`ImageTag.equals` compares by digest when the tag has one, otherwise by name.
`TagInfo.encoded_digest()` returns the digest as `sha256:<hex>`.

`imageupdater.semver` provides `parse_version`, `Version.compare` and
`sort_versions`; `parse_version` accepts a leading `v` and missing minor or
patch parts, and raises `InvalidVersionError` otherwise.

## Manifest options

`imageupdater.options.ManifestOptions` holds a platform filter
(`with_platform`, `wants_platform`, `platforms`), a metadata preference
(`with_metadata`, `wants_metadata`) and a log context (`with_logger`,
`logger`). With no platforms set, every platform is wanted. `platform_key`
builds keys such as `linux/arm/v7`.

## Logging

`imageupdater.log` writes `time=... level=... msg=...` lines with any context
fields appended as `key=value`; trace, debug, info and warn go to standard
output, error and fatal to standard error. On a terminal, lines are coloured
unless `ENABLE_LOG_COLORS=false`. `fatal` logs and then raises `SystemExit(1)`.

```python
from imageupdater import log

log.set_log_level("info")            # trace, debug, info, warn or error
log.with_context().add_field("registry", "ghcr.io").info("found %d tags", 3)
```

The default level is debug; `set_log_level` raises `ValueError` for unknown
names.

## Metrics

`imageupdater.metrics` registers request, application and client counters and
gauges in a default `MetricsRegistry`, reachable through `endpoint()`,
`applications()` and `clients()`. `MetricsRegistry.render()` returns them in
the Prometheus text format, and `start_metrics_server(port)` serves them at
`/metrics` from a background thread; call `shutdown()` on the returned server to
stop it.

## Version

`imageupdater.version` reports `version()`, `binary_name()`, `useragent()`,
`git_commit()`, `build_date()` and details of the running interpreter.

## What this package does not do

There is no registry API client here: the package does not list tags, fetch
manifests or blobs, or read image creation dates from a registry. It does not
resolve the credential references stored on endpoints (such as `env:NAME`)
into user names and passwords, and it has no command-line program or
controller loop that updates applications.