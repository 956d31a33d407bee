from unittest import mock

import paramiko
import pytest

from kubeops.config import SSHSettings
from kubeops.connector import ssh
from kubeops.connector.ssh import SSHConnector, SSHSession
from kubeops.errors import CommandTimeoutError, RemoteConnectionError
from kubeops.models import HostSpec


@pytest.fixture
def host():
    return HostSpec(name="node1", address="192.168.0.10", internal_address="10.0.0.10",
                    user="ubuntu", port=2222, password="secret")


@pytest.fixture
def ssh_client_cls():
    with mock.patch.object(ssh.paramiko, "SSHClient") as cls:
        cls.side_effect = lambda: mock.MagicMock(name="SSHClient")
        yield cls


def make_channel(stdout=b"", stderr=b"", exit_code=0, ready=True):
    channel = mock.MagicMock(name="Channel")
    channel.exit_status_ready.return_value = ready
    channel.recv_ready.return_value = False
    channel.recv_stderr_ready.return_value = False
    channel.recv.side_effect = [stdout, b""] if stdout else [b""]
    channel.recv_stderr.side_effect = [stderr, b""] if stderr else [b""]
    channel.recv_exit_status.return_value = exit_code
    return channel


def make_client(channel, active=True):
    client = mock.MagicMock(name="SSHClient")
    transport = client.get_transport.return_value
    transport.is_active.return_value = active
    transport.open_session.return_value = channel
    return client


def test_connections_are_pooled_per_host(ssh_client_cls, host):
    connector = SSHConnector(SSHSettings(private_key_path=None))
    first = connector.connect(host)
    second = connector.connect(host)

    assert first.client is second.client
    assert ssh_client_cls.call_count == 1
    kwargs = first.client.connect.call_args.kwargs
    assert kwargs["hostname"] == "192.168.0.10"
    assert kwargs["port"] == 2222
    assert kwargs["username"] == "ubuntu"
    assert kwargs["password"] == "secret"
    assert kwargs["key_filename"] is None
    assert "ubuntu@192.168.0.10:2222" in connector.clients


def test_broken_session_drops_the_connection(ssh_client_cls, host):
    connector = SSHConnector(SSHSettings(private_key_path=None))
    session = connector.connect(host)
    client = session.client

    connector.close(session, broken=True)

    assert session.closed
    client.close.assert_called_once()
    assert connector.clients == {}
    assert connector.connect(host).client is not client


def test_healthy_close_keeps_the_connection(ssh_client_cls, host):
    connector = SSHConnector(SSHSettings(private_key_path=None))
    session = connector.connect(host)
    connector.close(session)
    assert connector.connect(host).client is session.client


def test_stale_connection_is_replaced(ssh_client_cls, host):
    connector = SSHConnector(SSHSettings(private_key_path=None))
    stale = connector.connect(host).client
    stale.get_transport.return_value.is_active.return_value = False

    fresh = connector.connect(host).client
    assert fresh is not stale
    stale.close.assert_called_once()


@pytest.mark.parametrize("error", [
    paramiko.AuthenticationException("bad password"),
    OSError("No route to host"),
])
def test_dial_failures_become_connection_errors(ssh_client_cls, host, error):
    def failing_client():
        client = mock.MagicMock(name="SSHClient")
        client.connect.side_effect = error
        return client

    ssh_client_cls.side_effect = failing_client
    connector = SSHConnector(SSHSettings(private_key_path=None))

    with pytest.raises(RemoteConnectionError) as excinfo:
        connector.connect(host)
    assert excinfo.value.host == "node1"
    assert connector.clients == {}


def test_close_all(ssh_client_cls, host):
    connector = SSHConnector(SSHSettings(private_key_path=None))
    client = connector.connect(host).client
    connector.close_all()
    client.close.assert_called_once()
    assert connector.clients == {}


def test_exec_collects_output(host):
    channel = make_channel(stdout=b"hello\n", stderr=b"warn\n", exit_code=3)
    session = SSHSession(host, make_client(channel))

    result = session.exec("echo hello", timeout=10)

    channel.exec_command.assert_called_once_with("echo hello")
    assert result.exit_code == 3
    assert result.stdout == "hello\n"
    assert result.stderr == "warn\n"
    assert not result.ok
    channel.close.assert_called_once()


def test_exec_drains_all_buffered_output_each_poll(host):
    channel = make_channel(ready=False)
    channel.exit_status_ready.side_effect = [False, True]
    channel.recv_ready.side_effect = [True, True, True, False]
    channel.recv.side_effect = [b"a" * ssh.CHUNK_SIZE, b"b" * ssh.CHUNK_SIZE, b"c", b""]
    session = SSHSession(host, make_client(channel))

    with mock.patch.object(ssh.time, "sleep") as sleep:
        result = session.exec("journalctl", timeout=10)

    assert result.stdout == "a" * ssh.CHUNK_SIZE + "b" * ssh.CHUNK_SIZE + "c"
    assert sleep.call_count == 1
    assert channel.recv.call_count == 4

def test_exec_times_out(host):
    channel = make_channel(ready=False)
    session = SSHSession(host, make_client(channel))

    with pytest.raises(CommandTimeoutError):
        session.exec("sleep 100", timeout=0)
    channel.close.assert_called_once()


def test_exec_on_dead_transport(host):
    session = SSHSession(host, make_client(make_channel(), active=False))
    with pytest.raises(RemoteConnectionError):
        session.exec("true", timeout=10)
