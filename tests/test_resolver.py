import socket
import threading
import time
from unittest import mock

import pytest

from trantor.resolver import Resolver, is_cares_used, new_resolver


@pytest.fixture(autouse=True)
def clean_cache():
    Resolver.clear_cache()
    yield
    Resolver.clear_cache()


def fake_result(ip):
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, 0))]


def resolve_and_wait(resolver, hostname):
    done = threading.Event()
    results = []

    def callback(inet):
        results.append(inet)
        done.set()

    resolver.resolve(hostname, callback)
    assert done.wait(5)
    return results[0]


def test_resolves_numeric_address():
    inet = resolve_and_wait(Resolver(), "127.0.0.1")
    assert inet.to_ip() == "127.0.0.1"
    assert inet.to_port() == 0


def test_result_is_cached_and_answered_synchronously():
    with mock.patch("socket.getaddrinfo", return_value=fake_result("10.1.2.3")) as lookup:
        resolver = Resolver()
        first = resolve_and_wait(resolver, "host.example.com")
        seen = []
        resolver.resolve("host.example.com",
                         lambda inet: seen.append((inet, threading.get_ident())))
        assert lookup.call_count == 1
    assert first.to_ip() == "10.1.2.3"
    assert seen == [(first, threading.get_ident())]


def test_cache_is_shared_between_resolvers():
    with mock.patch("socket.getaddrinfo", return_value=fake_result("10.1.2.3")) as lookup:
        resolve_and_wait(Resolver(), "shared.example.com")
        inet = resolve_and_wait(new_resolver(None, 0), "shared.example.com")
        assert lookup.call_count == 1
    assert inet.to_ip() == "10.1.2.3"


def test_failure_gives_zero_address_and_is_not_cached():
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror("no such host")) as lookup:
        resolver = Resolver()
        first = resolve_and_wait(resolver, "missing.example.com")
        resolve_and_wait(resolver, "missing.example.com")
        assert lookup.call_count == 2
    assert first.to_ip() == "0.0.0.0"
    assert first.to_port() == 0
    assert first.is_unspecified() is False


def test_expired_entry_is_looked_up_again():
    with mock.patch("socket.getaddrinfo", return_value=fake_result("10.1.2.3")) as lookup:
        resolver = Resolver(timeout=1)
        first = resolve_and_wait(resolver, "expiring.example.com")
        time.sleep(1.1)
        second = resolve_and_wait(resolver, "expiring.example.com")
        assert lookup.call_count == 2
    assert first.to_ip() == "10.1.2.3"
    assert second.to_ip() == "10.1.2.3"


def test_resolve_all_wraps_result_in_list():
    done = threading.Event()
    results = []

    def callback(inets):
        results.append(inets)
        done.set()

    with mock.patch("socket.getaddrinfo", return_value=fake_result("10.1.2.3")) as lookup:
        resolver = Resolver()
        resolver.resolve_all("list.example.com", callback)
        assert done.wait(5)
        cached = resolve_and_wait(resolver, "list.example.com")
        assert lookup.call_count == 1
    assert len(results[0]) == 1
    assert results[0][0].to_ip() == "10.1.2.3"
    assert cached.to_ip() == "10.1.2.3"


def test_clear_cache_forces_new_lookup():
    with mock.patch("socket.getaddrinfo", return_value=fake_result("10.1.2.3")) as lookup:
        resolver = Resolver()
        resolve_and_wait(resolver, "clear.example.com")
        Resolver.clear_cache()
        again = resolve_and_wait(resolver, "clear.example.com")
        assert lookup.call_count == 2
    assert again.to_ip() == "10.1.2.3"


def test_cares_is_not_used():
    assert is_cares_used() is False