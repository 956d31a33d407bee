"""
Remote execution channels.
"""
from .base import CommandResult, Connector, Session
from .ssh import SSHConnector, SSHSession

__all__ = [
    'CommandResult',
    'Connector',
    'Session',
    'SSHConnector',
    'SSHSession',
]
