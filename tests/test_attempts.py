import pytest

from portwarden.attempts import ConnectionAttempt, Protocol, attempt_from_endpoint


def test_loopback_sender_has_blank_address():
    attempt = attempt_from_endpoint(Protocol.TCP, ("127.0.0.1", 54321))
    assert attempt == ConnectionAttempt(Protocol.TCP, 54321, "")
    assert attempt.is_local


def test_whole_loopback_range_counts_as_local():
    assert attempt_from_endpoint(Protocol.UDP, ("127.8.9.10", 1)).address == ""


def test_ipv6_loopback_and_scoped_addresses():
    assert attempt_from_endpoint(Protocol.UDP, ("::1", 5000, 0, 0)).address == ""
    scoped = attempt_from_endpoint(Protocol.UDP, ("fe80::1%eth0", 5000, 0, 2))
    assert scoped.address == "fe80::1"


def test_remote_sender_keeps_literal_address():
    attempt = attempt_from_endpoint(Protocol.UDP, ("10.0.0.5", 11111))
    assert attempt == ConnectionAttempt(Protocol.UDP, 11111, "10.0.0.5")
    assert not attempt.is_local


def test_equality_and_hash_use_all_three_fields():
    a = ConnectionAttempt(Protocol.TCP, 4000, "10.0.0.1")
    assert a == ConnectionAttempt(Protocol.TCP, 4000, "10.0.0.1")
    assert len({a, ConnectionAttempt(Protocol.TCP, 4000, "10.0.0.1")}) == 1
    assert a != ConnectionAttempt(Protocol.UDP, 4000, "10.0.0.1")
    assert a != ConnectionAttempt(Protocol.TCP, 4001, "10.0.0.1")
    assert a != ConnectionAttempt(Protocol.TCP, 4000, "10.0.0.2")


def test_attempts_are_immutable():
    a = ConnectionAttempt(Protocol.TCP, 4000)
    with pytest.raises(AttributeError):
        a.port = 1  # type: ignore[misc]


def test_describe_wording():
    local = ConnectionAttempt(Protocol.TCP, 54321)
    remote = ConnectionAttempt(Protocol.UDP, 11111, "10.0.0.5")
    assert local.describe() == (
        "Got a new attempt to connect over TCP from the local machine via remote port 54321"
    )
    assert remote.describe() == (
        "Got a new attempt to connect over UDP from 10.0.0.5 via remote port 11111"
    )


def test_to_dict():
    assert ConnectionAttempt(Protocol.UDP, 7, "10.1.1.1").to_dict() == {
        "protocol": "UDP",
        "port": 7,
        "address": "10.1.1.1",
    }
