from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from imageupdater import endpoints
from imageupdater.endpoints import (
    RATE_LIMIT_NONE,
    RateLimiter,
    TagListSort,
    add_registry_endpoint,
    clear_registries,
    configured_endpoints,
    get_default_registry,
    get_registry_endpoint,
    new_registry_endpoint,
    restore_default_registry_configuration,
    set_default_registry,
    set_registry_endpoint_credentials,
)


@pytest.fixture(autouse=True)
def _restore():
    restore_default_registry_configuration()
    yield
    restore_default_registry_configuration()


def test_get_default_endpoint():
    ep = get_registry_endpoint("")
    assert ep.registry_prefix == "docker.io"
    assert ep.registry_api == "https://registry-1.docker.io"
    assert ep.default_ns == "library"


def test_get_gcr_endpoint():
    ep = get_registry_endpoint("gcr.io")
    assert ep.registry_prefix == "gcr.io"


def test_infer_endpoint():
    ep = get_registry_endpoint("foobar.com")
    assert ep.registry_prefix == "foobar.com"
    assert ep.registry_api == "https://foobar.com"
    assert ep.limit == 20
    assert "foobar.com" in configured_endpoints()


def test_add_and_change_endpoint():
    add_registry_endpoint(
        new_registry_endpoint(
            "example.com", "Example", "https://example.com", "", "", False,
            TagListSort.UNSORTED, 5, 0,
        )
    )
    ep = get_registry_endpoint("example.com")
    assert ep.registry_prefix == "example.com"
    assert ep.registry_name == "Example"
    assert ep.registry_api == "https://example.com"
    assert ep.insecure is False
    assert ep.default_ns == ""
    assert ep.tag_list_sort == TagListSort.UNSORTED

    add_registry_endpoint(
        new_registry_endpoint(
            "example.com", "Example", "https://example.com", "", "library", True,
            TagListSort.LATEST_FIRST, 5, 0,
        )
    )
    ep = get_registry_endpoint("example.com")
    assert ep.insecure is True
    assert ep.default_ns == "library"
    assert ep.tag_list_sort == TagListSort.LATEST_FIRST


def test_new_endpoint_normalises_values():
    ep = new_registry_endpoint(
        "x.io", "X", "https://x.io/", "", "", False, TagListSort.UNSORTED, 0, 30
    )
    assert ep.registry_api == "https://x.io"
    assert ep.limit == RATE_LIMIT_NONE
    assert ep.creds_expire == timedelta(seconds=30)


def test_set_and_unset_credentials_on_default():
    set_registry_endpoint_credentials("", "env:FOOBAR")
    assert get_registry_endpoint("").credentials == "env:FOOBAR"
    set_registry_endpoint_credentials("", "")
    assert get_registry_endpoint("").credentials == ""


def _read_prefix():
    return get_registry_endpoint("gcr.io").registry_prefix


def _write_and_read(i):
    set_registry_endpoint_credentials("", f"secret:foo/secret-{i}")
    return get_registry_endpoint("").registry_prefix


def test_concurrent_access():
    with ThreadPoolExecutor(max_workers=16) as pool:
        read_futures = [pool.submit(_read_prefix) for _ in range(50)]
        write_futures = [pool.submit(_write_and_read, i) for i in range(50)]
        read_results = [f.result() for f in read_futures]
        write_results = [f.result() for f in write_futures]
    assert read_results == ["gcr.io"] * 50
    assert write_results == ["docker.io"] * 50
    assert get_registry_endpoint("").credentials.startswith("secret:foo/secret-")


def test_set_default():
    dep = get_default_registry()
    assert dep is not None
    assert dep.registry_prefix == "docker.io"
    assert dep.is_default

    ep = get_registry_endpoint("ghcr.io")
    assert not ep.is_default

    set_default_registry(ep)
    assert ep.is_default
    assert not dep.is_default
    assert get_default_registry().registry_prefix == ep.registry_prefix


def test_restore_resets_default():
    set_default_registry(get_registry_endpoint("ghcr.io"))
    restore_default_registry_configuration()
    assert get_default_registry().registry_prefix == "docker.io"
    assert configured_endpoints() == ["docker.io"]


def test_no_default_raises():
    clear_registries()
    endpoints._default_registry = None
    with pytest.raises(LookupError, match="no default endpoint"):
        get_registry_endpoint("")


def test_deep_copy():
    ep = get_registry_endpoint("docker.pkg.github.com")
    new_ep = ep.deep_copy()
    assert new_ep is not ep
    assert ep.registry_api == new_ep.registry_api
    assert ep.registry_name == new_ep.registry_name
    assert ep.registry_prefix == new_ep.registry_prefix
    assert ep.credentials == new_ep.credentials
    assert ep.tag_list_sort == new_ep.tag_list_sort
    assert ep.username == new_ep.username
    assert ep.ping == new_ep.ping
    assert ep.limiter is new_ep.limiter


@pytest.mark.parametrize(
    "text,expected",
    [
        ("latest-first", TagListSort.LATEST_FIRST),
        ("latest-last", TagListSort.LATEST_LAST),
        ("none", TagListSort.UNSORTED),
        ("", TagListSort.UNSORTED),
        ("unknown", TagListSort.UNKNOWN),
        ("LATEST-FIRST", TagListSort.LATEST_FIRST),
    ],
)
def test_tag_list_sort_from_string(text, expected):
    assert TagListSort.from_string(text) == expected


def test_tag_list_sort_strings_and_time_sorted():
    assert str(TagListSort.LATEST_FIRST) == "latest-first"
    assert str(TagListSort.LATEST_LAST) == "latest-last"
    assert str(TagListSort.UNSORTED) == "unsorted"
    assert str(TagListSort.UNKNOWN) == "unknown"
    assert TagListSort.LATEST_FIRST.is_time_sorted()
    assert TagListSort.LATEST_LAST.is_time_sorted()
    assert not TagListSort.UNSORTED.is_time_sorted()


def test_rate_limiter_spaces_calls():
    limiter = RateLimiter(10)
    first = limiter.take()
    second = limiter.take()
    assert second - first >= 0.099


def test_rate_limiter_rejects_zero():
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_session_verification():
    insecure = new_registry_endpoint(
        "a.io", "A", "https://a.io", "", "", True, TagListSort.UNSORTED, 1, 0
    )
    secure = new_registry_endpoint(
        "b.io", "B", "https://b.io", "", "", False, TagListSort.UNSORTED, 1, 0
    )
    assert insecure.session().verify is False
    assert secure.session().verify is True