"""
CoreTet

A music organization service: users upload audio tracks to object storage,
organize them into ordered playlists, share playlists with collaborators by
email, and manage the external storage providers their library lives on.

Package Structure:
- coretet/: HTTP handlers, access control, upload intake and persistence
- coretet/storage/: storage provider backends and the active-provider registry
"""

__version__ = "1.0.0"
