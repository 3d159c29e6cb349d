"""Unit tests for client IP resolution."""

from ipaddress import ip_address

import pytest

from http_limiter.core.client_ip import UNKNOWN_CLIENT_KEY, default_key, get_ip, split_host_port


class TestGetIP:
    def test_forwarded_for_first_hop(self, request_factory) -> None:
        request = request_factory(headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert get_ip(request) == ip_address("203.0.113.5")

    def test_forwarded_for_wins_over_real_ip(self, request_factory) -> None:
        request = request_factory(
            headers={"X-Forwarded-For": "  203.0.113.5 ", "X-Real-IP": "198.51.100.7"}
        )
        assert get_ip(request) == ip_address("203.0.113.5")

    def test_invalid_forwarded_for_yields_none(self, request_factory) -> None:
        request = request_factory(
            headers={"X-Forwarded-For": "not-an-ip", "X-Real-IP": "198.51.100.7"}
        )
        assert get_ip(request) is None

    def test_real_ip(self, request_factory) -> None:
        request = request_factory(headers={"X-Real-IP": " 198.51.100.7 "})
        assert get_ip(request) == ip_address("198.51.100.7")

    def test_blank_real_ip_falls_back_to_remote_address(self, request_factory) -> None:
        request = request_factory(headers={"X-Real-IP": "   "})
        assert get_ip(request) == ip_address("192.0.2.1")

    def test_remote_address(self, request_factory) -> None:
        request = request_factory(client=("192.0.2.1", 54321))
        assert get_ip(request) == ip_address("192.0.2.1")

    def test_remote_address_with_port_suffix(self, request_factory) -> None:
        request = request_factory(client=("192.0.2.1:54321", 0))
        assert get_ip(request) == ip_address("192.0.2.1")

    def test_remote_ipv6_address(self, request_factory) -> None:
        assert get_ip(request_factory(client=("::1", 8080))) == ip_address("::1")
        assert get_ip(request_factory(client=("[2001:db8::1]:8080", 0))) == ip_address(
            "2001:db8::1"
        )

    def test_unparseable_remote_address(self, request_factory) -> None:
        assert get_ip(request_factory(client=("testclient", 50000))) is None

    def test_missing_client(self, request_factory) -> None:
        assert get_ip(request_factory(client=None)) is None


class TestDefaultKey:
    def test_uses_ip_text(self, request_factory) -> None:
        request = request_factory(headers={"X-Real-IP": "198.51.100.7"})
        assert default_key(request) == "198.51.100.7"

    def test_unresolvable_clients_share_one_key(self, request_factory) -> None:
        assert default_key(request_factory(client=None)) == UNKNOWN_CLIENT_KEY
        assert (
            default_key(request_factory(headers={"X-Forwarded-For": "garbage"}))
            == UNKNOWN_CLIENT_KEY
        )


@pytest.mark.parametrize(
    ("addr", "expected"),
    [
        ("192.0.2.1:54321", ("192.0.2.1", "54321")),
        ("[::1]:8080", ("::1", "8080")),
        ("example.com:80", ("example.com", "80")),
    ],
)
def test_split_host_port(addr: str, expected: tuple[str, str]) -> None:
    assert split_host_port(addr) == expected


@pytest.mark.parametrize("addr", ["192.0.2.1", "::1", "[::1]", "", "[::1]8080"])
def test_split_host_port_rejects_addresses_without_port(addr: str) -> None:
    with pytest.raises(ValueError):
        split_host_port(addr)
