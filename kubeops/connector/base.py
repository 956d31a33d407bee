"""Connector and session contracts."""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from ..errors import CommandTimeoutError, RemoteConnectionError
from ..models import HostSpec


@dataclass
class CommandResult:
    exit_code: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Session(ABC):
    """A channel to one host that can run commands until it is closed."""

    def __init__(self, host: HostSpec):
        self.host = host
        self.closed = False

    @abstractmethod
    def exec(self, command: str, timeout: float) -> CommandResult:
        """Run `command` and wait for it.

        Raises:
            CommandTimeoutError: the command did not finish within `timeout` seconds
            RemoteConnectionError: the transport dropped while running
        """


class Connector(ABC):
    """Opens sessions to hosts. One instance is shared by every host of a run."""

    @abstractmethod
    def connect(self, host: HostSpec) -> Session:
        """Return a session to `host`, raising RemoteConnectionError when unreachable."""

    @abstractmethod
    def close(self, session: Session, broken: bool = False) -> None:
        """Release `session`. A broken session's underlying connection is discarded."""

    def close_all(self) -> None:
        """Drop every pooled connection."""

    @contextmanager
    def session(self, host: HostSpec) -> Iterator[Session]:
        session = self.connect(host)
        broken = False
        try:
            yield session
        except (RemoteConnectionError, CommandTimeoutError):
            broken = True
            raise
        finally:
            self.close(session, broken=broken)
