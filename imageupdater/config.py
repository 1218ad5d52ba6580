"""Loading registry configuration from YAML."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

import yaml

from imageupdater import log
from imageupdater.endpoints import (
    TagListSort,
    add_registry_endpoint,
    clear_registries,
    get_default_registry,
    new_registry_endpoint,
    set_default_registry,
)


class ConfigurationError(ValueError):
    """Raised for malformed or inconsistent registry configuration."""


@dataclass
class RegistryConfiguration:
    """One registry entry of the configuration file."""

    name: str = ""
    api_url: str = ""
    ping: bool = False
    credentials: str = ""
    creds_expire: timedelta = timedelta(0)
    tag_sort_mode: str = ""
    prefix: str = ""
    insecure: bool = False
    default_ns: str = ""
    limit: int = 0
    is_default: bool = False


@dataclass
class RegistryList:
    """All registry entries of a configuration."""

    items: list[RegistryConfiguration] = field(default_factory=list)


_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``3s``, ``1h30m`` or ``1.5h``."""
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigurationError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigurationError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * total)


def _string(key: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigurationError(f"field {key}: expected a string, got {value!r}")
    return str(value)


def _boolean(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"field {key}: expected a boolean, got {value!r}")
    return value


def _integer(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"field {key}: expected an integer, got {value!r}")
    return value


def _duration(key: str, value: Any) -> timedelta:
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return timedelta(microseconds=value / 1000)
    raise ConfigurationError(f"field {key}: expected a duration, got {value!r}")


_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "name": ("name", _string),
    "api_url": ("api_url", _string),
    "ping": ("ping", _boolean),
    "credentials": ("credentials", _string),
    "credsexpire": ("creds_expire", _duration),
    "tagsortmode": ("tag_sort_mode", _string),
    "prefix": ("prefix", _string),
    "insecure": ("insecure", _boolean),
    "defaultns": ("default_ns", _string),
    "limit": ("limit", _integer),
    "default": ("is_default", _boolean),
}


def _entry(raw: Any) -> RegistryConfiguration:
    if raw is None:
        return RegistryConfiguration()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"registry entry must be a mapping, got {raw!r}")
    values: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in _FIELDS:
            raise ConfigurationError(f"field {key} not found in registry configuration")
        attr, convert = _FIELDS[key]
        if value is not None:
            values[attr] = convert(key, value)
    return RegistryConfiguration(**values)


def parse_registry_configuration(yaml_source: str) -> RegistryList:
    """Parse and validate a registry configuration from YAML text."""
    try:
        document = yaml.safe_load(yaml_source)
    except yaml.YAMLError as err:
        raise ConfigurationError(str(err)) from err

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigurationError("registry configuration must be a mapping")
    for key in document:
        if key != "registries":
            raise ConfigurationError(f"field {key} not found in registry list")
    raw_items = document.get("registries") or []
    if not isinstance(raw_items, list):
        raise ConfigurationError("registries must be a list")

    reg_list = RegistryList([_entry(raw) for raw in raw_items])

    problem: str | None = None
    default_prefix_found = ""
    for registry in reg_list.items:
        if registry.name == "":
            problem = f"registry name is missing for entry {registry}"
        elif registry.api_url == "":
            problem = f"API URL must be specified for registry {registry.name}"
        elif registry.prefix == "":
            if default_prefix_found:
                problem = (
                    f"there must be only one default registry (already is "
                    f"{default_prefix_found}), {registry.name} needs a prefix"
                )
            else:
                default_prefix_found = registry.name

        if problem is None and TagListSort.from_string(registry.tag_sort_mode) == TagListSort.UNKNOWN:
            problem = (
                f"unknown tag sort mode for registry {registry.name}: {registry.tag_sort_mode}"
            )

    if problem is not None:
        raise ConfigurationError(problem)
    return reg_list


def load_registry_configuration(path: str | Path, clear: bool) -> RegistryList:
    """Load a registry configuration file and add its endpoints.

    With ``clear`` set, previously configured endpoints are removed first.
    """
    source = Path(path).read_text(encoding="utf-8")
    reg_list = parse_registry_configuration(source)

    if clear:
        clear_registries()

    have_default = False
    for reg in reg_list.items:
        tag_sort = TagListSort.from_string(reg.tag_sort_mode)
        if tag_sort != TagListSort.UNSORTED:
            log.warn(
                "Registry %s has tag sort mode set to %s, meta data retrieval will be "
                "disabled for this registry.",
                reg.api_url,
                tag_sort,
            )
        ep = new_registry_endpoint(
            reg.prefix,
            reg.name,
            reg.api_url,
            reg.credentials,
            reg.default_ns,
            reg.insecure,
            tag_sort,
            reg.limit,
            reg.creds_expire,
        )
        if reg.is_default and have_default:
            current = get_default_registry()
            current_prefix = current.registry_prefix if current is not None else ""
            raise ConfigurationError(
                f"cannot set registry {ep.registry_prefix} as default - only one default "
                f"registry allowed, currently set to {current_prefix}"
            )

        add_registry_endpoint(ep)

        if reg.is_default:
            set_default_registry(ep)
            have_default = True

    log.info("Loaded %d registry configurations from %s", len(reg_list.items), path)
    return reg_list