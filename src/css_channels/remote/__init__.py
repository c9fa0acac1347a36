"""
CSS Channels Remote Module.

Remote transports and the sync engine that pushes and garbage-collects
deployed channels.
"""

from .sync import ROOT_FILES, RemoteSyncEngine
from .transport import FTPTransport, LocalTransport, RemoteEntry, Transport

__all__ = [
    "ROOT_FILES",
    "RemoteSyncEngine",
    "Transport",
    "RemoteEntry",
    "FTPTransport",
    "LocalTransport",
]
