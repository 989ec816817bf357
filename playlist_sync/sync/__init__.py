"""Synchronization engine and snapshot transfer"""

from .synchronizer import PlaylistSynchronizer, SyncOptions, SyncReport, synchronize, synchronize_playlists
from .transfer import export_playlists, load_playlists, save_playlists

__all__ = [
    'PlaylistSynchronizer', 'SyncOptions', 'SyncReport', 'synchronize', 'synchronize_playlists',
    'export_playlists', 'load_playlists', 'save_playlists',
]
