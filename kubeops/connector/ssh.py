"""
SSH connection management using paramiko with a per-host connection pool.
"""
import logging
import os
import socket
import threading
import time
from typing import Dict, Optional

import paramiko

from ..config import SSHSettings
from ..errors import CommandTimeoutError, RemoteConnectionError
from ..models import HostSpec
from .base import CommandResult, Connector, Session

logger = logging.getLogger("kubeops.connector.ssh")

POLL_INTERVAL = 0.1
CHUNK_SIZE = 4096


class SSHSession(Session):
    """Runs commands over a pooled paramiko client, one channel per command."""

    def __init__(self, host: HostSpec, client: paramiko.SSHClient):
        super().__init__(host)
        self.client = client

    def exec(self, command: str, timeout: float) -> CommandResult:
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise RemoteConnectionError(f"SSH transport to {self.host.address} is not active",
                                        host=self.host.name)
        try:
            channel = transport.open_session()
            channel.exec_command(command)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise RemoteConnectionError(f"Failed to open channel to {self.host.address}: {e}",
                                        host=self.host.name) from e

        deadline = time.monotonic() + timeout
        stdout, stderr = [], []
        try:
            while not channel.exit_status_ready():
                if time.monotonic() > deadline:
                    raise CommandTimeoutError(
                        f"Command timed out after {timeout:.1f} seconds: {command}", host=self.host.name)
                if not transport.is_active():
                    raise RemoteConnectionError(
                        f"SSH connection to {self.host.address} dropped", host=self.host.name)
                self._drain(channel, stdout, stderr)
                time.sleep(POLL_INTERVAL)

            # Read any remaining output after command completes
            channel.settimeout(max(deadline - time.monotonic(), 1.0))
            for chunk in iter(lambda: channel.recv(CHUNK_SIZE), b''):
                stdout.append(chunk)
            for chunk in iter(lambda: channel.recv_stderr(CHUNK_SIZE), b''):
                stderr.append(chunk)
            exit_code = channel.recv_exit_status()
        except (CommandTimeoutError, RemoteConnectionError):
            raise
        except socket.timeout as e:
            raise CommandTimeoutError(f"Timed out reading output of: {command}", host=self.host.name) from e
        except (paramiko.SSHException, EOFError) as e:
            raise RemoteConnectionError(f"SSH channel to {self.host.address} failed: {e}",
                                        host=self.host.name) from e
        finally:
            channel.close()

        return CommandResult(
            exit_code=exit_code,
            stdout=b''.join(stdout).decode('utf-8', 'replace'),
            stderr=b''.join(stderr).decode('utf-8', 'replace'),
        )

    @staticmethod
    def _drain(channel, stdout, stderr) -> None:
        while channel.recv_ready():
            chunk = channel.recv(CHUNK_SIZE)
            if not chunk:
                break
            stdout.append(chunk)
        while channel.recv_stderr_ready():
            chunk = channel.recv_stderr(CHUNK_SIZE)
            if not chunk:
                break
            stderr.append(chunk)


class SSHConnector(Connector):
    """Thread-safe SSH connector that keeps one authenticated client per host."""

    def __init__(self, settings: Optional[SSHSettings] = None):
        self.settings = settings or SSHSettings()
        self.clients: Dict[str, paramiko.SSHClient] = {}
        self.lock = threading.Lock()
        self._host_locks: Dict[str, threading.Lock] = {}

    @staticmethod
    def connection_id(host: HostSpec) -> str:
        return f"{host.user}@{host.address}:{host.port}"

    def _host_lock(self, connection_id: str) -> threading.Lock:
        with self.lock:
            return self._host_locks.setdefault(connection_id, threading.Lock())

    def connect(self, host: HostSpec) -> SSHSession:
        connection_id = self.connection_id(host)
        # Serialize dialing per host so concurrent workers share one client
        with self._host_lock(connection_id):
            with self.lock:
                client = self.clients.get(connection_id)
            if client is not None and not self._is_active(client):
                logger.debug(f"Connection to {connection_id} went stale, reconnecting")
                self._evict(connection_id)
                client = None
            if client is None:
                logger.debug(f"Creating new SSH connection to {connection_id}")
                client = self._dial(host)
                with self.lock:
                    self.clients[connection_id] = client
        return SSHSession(host, client)

    def close(self, session: Session, broken: bool = False) -> None:
        session.closed = True
        if broken:
            logger.debug(f"Discarding broken connection to {session.host.address}")
            self._evict(self.connection_id(session.host))

    def close_all(self) -> None:
        with self.lock:
            clients = list(self.clients.values())
            self.clients.clear()
        for client in clients:
            client.close()

    def _evict(self, connection_id: str) -> None:
        with self.lock:
            client = self.clients.pop(connection_id, None)
        if client is not None:
            client.close()

    @staticmethod
    def _is_active(client: paramiko.SSHClient) -> bool:
        transport = client.get_transport()
        return transport is not None and transport.is_active()

    def _dial(self, host: HostSpec) -> paramiko.SSHClient:
        key_path = host.private_key_path or self.settings.private_key_path
        if key_path:
            key_path = os.path.expanduser(key_path)
            if not os.path.exists(key_path):
                key_path = None

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=host.address,
                port=host.port or self.settings.port,
                username=host.user or self.settings.user,
                password=host.password,
                key_filename=key_path,
                timeout=self.settings.connect_timeout,
                banner_timeout=self.settings.connect_timeout,
                auth_timeout=self.settings.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteConnectionError(f"Authentication failed for {self.connection_id(host)}: {e}",
                                        host=host.name) from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            raise RemoteConnectionError(f"Failed to connect to {self.connection_id(host)}: {e}",
                                        host=host.name) from e
        return client
