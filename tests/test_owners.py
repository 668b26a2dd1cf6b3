import types

import psutil
import pytest

import portwarden.owners as owners
from portwarden.attempts import ConnectionAttempt, Protocol


def _conn(lport, rport=None, pid=4242):
    return types.SimpleNamespace(
        laddr=types.SimpleNamespace(ip="127.0.0.1", port=lport),
        raddr=types.SimpleNamespace(ip="127.0.0.1", port=rport) if rport else (),
        pid=pid,
    )


class FakeProcess:
    def __init__(self, pid):
        self.pid = pid

    def name(self):
        return f"proc-{self.pid}"


@pytest.fixture
def fake_psutil(monkeypatch):
    table = {"tcp": [], "udp": []}
    calls = []

    def net_connections(kind="inet"):
        calls.append(kind)
        return table[kind]

    monkeypatch.setattr(owners.psutil, "net_connections", net_connections)
    monkeypatch.setattr(owners.psutil, "Process", FakeProcess)
    return types.SimpleNamespace(table=table, calls=calls)


def test_remote_attempts_are_never_looked_up(fake_psutil):
    attempt = ConnectionAttempt(Protocol.TCP, 5555, "10.0.0.5")
    assert owners.find_local_owner(attempt) is None
    assert fake_psutil.calls == []


def test_udp_sender_found_by_source_port(fake_psutil):
    fake_psutil.table["udp"] = [_conn(1111, pid=1), _conn(5555, pid=77)]
    owner = owners.find_local_owner(ConnectionAttempt(Protocol.UDP, 5555))
    assert owner == owners.LocalOwner(pid=77, name="proc-77")
    assert fake_psutil.calls == ["udp"]
    assert str(owner) == "proc-77 (PID 77)"


def test_tcp_sender_must_point_at_monitored_port(fake_psutil):
    fake_psutil.table["tcp"] = [
        _conn(6000, rport=8080, pid=10),   # same source port, other destination
        _conn(6000, rport=3883, pid=20),
    ]
    owner = owners.find_local_owner(ConnectionAttempt(Protocol.TCP, 6000), monitored_port=3883)
    assert owner.pid == 20


def test_sockets_without_pid_are_skipped(fake_psutil):
    fake_psutil.table["udp"] = [_conn(5555, pid=None)]
    assert owners.find_local_owner(ConnectionAttempt(Protocol.UDP, 5555)) is None


def test_access_denied_returns_none(monkeypatch):
    def denied(kind="inet"):
        raise psutil.AccessDenied()

    monkeypatch.setattr(owners.psutil, "net_connections", denied)
    assert owners.find_local_owner(ConnectionAttempt(Protocol.TCP, 6000)) is None


def test_vanished_process_keeps_pid(fake_psutil, monkeypatch):
    def gone(pid):
        raise psutil.NoSuchProcess(pid)

    fake_psutil.table["udp"] = [_conn(5555, pid=99)]
    monkeypatch.setattr(owners.psutil, "Process", gone)
    owner = owners.find_local_owner(ConnectionAttempt(Protocol.UDP, 5555))
    assert owner == owners.LocalOwner(pid=99, name="")
    assert str(owner) == "? (PID 99)"
