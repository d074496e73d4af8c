"""
Unit Tests for the Route Table
==============================

Tests for pathproxy/proxy/table.py and pathproxy/proxy/errors.py

Test Coverage:
--------------
1. Default host validation (unparseable URL, bad scheme, missing host)
2. Endpoint registration validation (empty path, unparseable URL, bad scheme)
3. Exact-path matching and default fallback
4. Re-registration replaces the earlier route
5. Registration publishes snapshots safe for concurrent readers

Run tests:
----------
    pytest pathproxy/tests/test_table.py -v
"""

import threading

import pytest

from pathproxy.proxy import (
    BaseURL,
    EmptyPath,
    InvalidDefaultHost,
    InvalidDefaultHostScheme,
    InvalidEndpointScheme,
    InvalidEndpointURL,
    ProxyConfigurationError,
    ProxyRouter,
    RouteTable,
)


# ============================================================================
# Default Host Validation
# ============================================================================

def test_default_host_parsing_failure():
    """Test that an unparseable default host is rejected"""
    with pytest.raises(InvalidDefaultHost) as exc_info:
        ProxyRouter("http://192.168%31/")

    assert str(exc_info.value).startswith("proxy: invalid default host")
    assert "%31" in str(exc_info.value)


def test_invalid_scheme_fails():
    """Test that a default host with a non-http scheme is rejected"""
    with pytest.raises(InvalidDefaultHostScheme) as exc_info:
        ProxyRouter("foobarbaz://localhost")

    assert str(exc_info.value).startswith("proxy: invalid default host scheme")


@pytest.mark.parametrize("default_host", ["", "hostname", "//hostname/"])
def test_default_host_without_scheme_fails(default_host):
    """Test that the default host must carry an explicit http(s) scheme"""
    with pytest.raises(InvalidDefaultHostScheme):
        RouteTable(default_host)


def test_default_host_without_host_fails():
    """Test that a default host with a scheme but no host is rejected"""
    with pytest.raises(InvalidDefaultHost) as exc_info:
        RouteTable("http:///only/a/path")

    assert not isinstance(exc_info.value, InvalidDefaultHostScheme)


def test_default_host_is_set():
    """Test that the default target matches the constructor argument"""
    router = ProxyRouter("http://192.168.1.1")

    assert str(router.default_target) == "http://192.168.1.1"
    assert router.default_target == BaseURL(scheme="http", host="192.168.1.1")


def test_default_host_drops_path_and_query():
    """Test that only scheme, host and port of the default host are kept"""
    table = RouteTable("https://backend.internal:8443/ignored/path?x=1#frag")

    assert table.default_target.scheme == "https"
    assert table.default_target.host == "backend.internal"
    assert table.default_target.port == 8443
    assert str(table.default_target) == "https://backend.internal:8443"


def test_default_host_ipv6_netloc():
    """Test that IPv6 hosts are bracketed again in the netloc"""
    table = RouteTable("http://[::1]:8000")

    assert table.default_target.host == "::1"
    assert table.default_target.netloc == "[::1]:8000"


def test_configuration_errors_are_value_errors():
    """Test that configuration errors can be caught as ValueError"""
    with pytest.raises(ValueError):
        ProxyRouter("foobarbaz://localhost")

    assert issubclass(EmptyPath, ProxyConfigurationError)
    assert issubclass(InvalidEndpointURL, ProxyConfigurationError)


# ============================================================================
# Endpoint Registration
# ============================================================================

@pytest.fixture
def router():
    """Router without a transport; these tests never forward"""
    return ProxyRouter("http://hostname")


def test_handle_endpoint_empty_path(router):
    """Test that registering an empty path fails"""
    with pytest.raises(EmptyPath) as exc_info:
        router.handle_endpoint("", "http://anotherhostname")

    assert "path is empty" in str(exc_info.value)
    assert len(router.routes) == 0


def test_handle_endpoint_invalid_url(router):
    """Test that registering an unparseable endpoint fails"""
    with pytest.raises(InvalidEndpointURL) as exc_info:
        router.handle_endpoint("/foobar", "http://invalid.%2312.hostname")

    assert "invalid endpoint url" in str(exc_info.value)
    assert "/foobar" not in router.routes


@pytest.mark.parametrize("endpoint", [
    "http://bad host",
    "http://host:notaport",
    "http://100%zz/",
])
def test_handle_endpoint_rejects_malformed_hosts(router, endpoint):
    """Test that malformed hosts and ports are rejected"""
    with pytest.raises(InvalidEndpointURL):
        router.handle_endpoint("/x", endpoint)


def test_handle_endpoint_requires_host(router):
    """Test that an endpoint without an authority is rejected"""
    with pytest.raises(InvalidEndpointURL) as exc_info:
        router.handle_endpoint("/x", "just-a-path")

    assert "missing host" in str(exc_info.value)


def test_handle_endpoint_rejects_unknown_scheme(router):
    """Test that endpoints use the same scheme whitelist as the default host"""
    with pytest.raises(InvalidEndpointScheme) as exc_info:
        router.handle_endpoint("/x", "ftp://files.example.com")

    assert str(exc_info.value).startswith("invalid endpoint url")
    assert exc_info.value.scheme == "ftp"


def test_handle_endpoint_accepts_scheme_relative(router):
    """Test that //host/ endpoints are accepted with an empty scheme"""
    router.handle_endpoint("/foo", "//google.com/")

    target = router.routes["/foo"].target
    assert target.scheme == ""
    assert target.host == "google.com"
    assert str(target) == "//google.com"


def test_handle_endpoint_accepts_non_ascii_escape(router):
    """Test that percent escapes of non-ASCII bytes are allowed in hosts"""
    router.handle_endpoint("/idn", "http://caf%C3%A9.example")

    assert "/idn" in router.routes


def test_handle_endpoints_registers_mapping(router):
    """Test bulk registration from a mapping"""
    router.handle_endpoints({
        "/a": "http://a.example",
        "/b": "https://b.example:444",
    })

    assert router.match("/a") == BaseURL(scheme="http", host="a.example")
    assert router.match("/b") == BaseURL(scheme="https", host="b.example", port=444)


# ============================================================================
# Matching
# ============================================================================

def test_match_exact_path_only(router):
    """Test that only exact paths match; everything else gets the default"""
    router.handle_endpoint("/foo", "http://foo.example")

    assert router.match("/foo").host == "foo.example"
    assert router.match("/foo/").host == "hostname"
    assert router.match("/foo/bar").host == "hostname"
    assert router.match("/fo").host == "hostname"
    assert router.match("/").host == "hostname"


def test_reregistration_replaces_route(router):
    """Test that a later registration for the same path wins"""
    router.handle_endpoint("/foo", "http://first.example")
    router.handle_endpoint("/foo", "http://second.example")

    assert len(router.routes) == 1
    assert router.match("/foo").host == "second.example"


def test_failed_registration_keeps_previous_route(router):
    """Test that an invalid re-registration leaves the table unchanged"""
    router.handle_endpoint("/foo", "http://first.example")

    with pytest.raises(InvalidEndpointURL):
        router.handle_endpoint("/foo", "http://invalid.%2312.hostname")

    assert router.match("/foo").host == "first.example"


def test_routes_snapshot_is_read_only(router):
    """Test that the published route mapping cannot be mutated in place"""
    router.handle_endpoint("/foo", "http://foo.example")
    snapshot = router.routes

    with pytest.raises(TypeError):
        snapshot["/bar"] = snapshot["/foo"]

    router.handle_endpoint("/bar", "http://bar.example")
    assert "/bar" not in snapshot
    assert "/bar" in router.routes


def test_independent_router_instances():
    """Test that routers do not share route tables"""
    first = ProxyRouter("http://first")
    second = ProxyRouter("http://second")
    first.handle_endpoint("/foo", "http://foo.example")

    assert second.match("/foo").host == "second"


def test_concurrent_registration_and_matching():
    """Test that readers only ever see the default or a registered target"""
    table = RouteTable("http://default")
    paths = [f"/path/{i}" for i in range(200)]
    seen_invalid = []
    done = threading.Event()

    def reader():
        while not done.is_set():
            for path in paths:
                host = table.match(path).host
                if host not in ("default", f"backend{path.rsplit('/', 1)[1]}"):
                    seen_invalid.append((path, host))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()

    for i, path in enumerate(paths):
        table.register(path, f"http://backend{i}")

    done.set()
    for thread in readers:
        thread.join()

    assert seen_invalid == []
    assert len(table) == len(paths)
    assert all(table.match(path).host != "default" for path in paths)
