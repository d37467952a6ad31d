"""
Tests for network scope resolution.
"""

import pytest

from audioporter.relay.scope import (
    LOCAL_SCOPE,
    NetworkScopeResolver,
    is_private_address,
    normalize_address,
)


class TestNormalizeAddress:
    """Tests for address canonicalization."""

    def test_ipv6_loopback(self):
        assert normalize_address("::1") == "127.0.0.1"

    def test_ipv4_mapped(self):
        assert normalize_address("::ffff:192.168.1.20") == "192.168.1.20"

    def test_brackets_and_zone(self):
        assert normalize_address("[fe80::1%eth0]") == "fe80::1"

    def test_garbage_passthrough(self):
        assert normalize_address("  not-an-ip ") == "not-an-ip"


class TestIsPrivateAddress:
    """Tests for the shared-scope address ranges."""

    @pytest.mark.parametrize("address", [
        "10.0.0.1",
        "172.16.0.1",
        "172.31.255.254",
        "192.168.1.1",
        "127.0.0.1",
        "169.254.10.10",
        "fe80::1",
        "fd00::1",
    ])
    def test_private(self, address):
        assert is_private_address(address) is True

    @pytest.mark.parametrize("address", [
        "8.8.8.8",
        "172.32.0.1",
        "203.0.113.5",
        "2001:db8::1",
        "",
        "garbage",
    ])
    def test_public(self, address):
        assert is_private_address(address) is False


class TestNetworkScopeResolver:
    """Tests for scope keys."""

    def test_private_collapses_to_local(self):
        resolver = NetworkScopeResolver()
        assert resolver.resolve("192.168.1.10") == LOCAL_SCOPE
        assert resolver.resolve("10.1.2.3") == LOCAL_SCOPE
        assert resolver.resolve("::1") == LOCAL_SCOPE

    def test_public_address_is_own_scope(self):
        resolver = NetworkScopeResolver()
        assert resolver.resolve("203.0.113.5") == "203.0.113.5"

    def test_forwarded_for_first_entry_wins(self):
        resolver = NetworkScopeResolver()
        scope = resolver.resolve("10.0.0.1", "203.0.113.5, 10.0.0.7")
        assert scope == "203.0.113.5"

    def test_forwarded_for_ignored_when_untrusted(self):
        resolver = NetworkScopeResolver(trust_forwarded_for=False)
        assert resolver.resolve("10.0.0.1", "203.0.113.5") == LOCAL_SCOPE

    def test_blank_forwarded_for_falls_back(self):
        resolver = NetworkScopeResolver()
        assert resolver.resolve("198.51.100.1", " , 1.2.3.4") == "198.51.100.1"

    def test_missing_address(self):
        resolver = NetworkScopeResolver()
        assert resolver.resolve(None) == "unknown"

    def test_same_public_ip_same_scope(self):
        resolver = NetworkScopeResolver()
        a = resolver.resolve("10.0.0.1", "203.0.113.5")
        b = resolver.resolve("10.0.0.2", "203.0.113.5")
        assert a == b
