"""Core utilities for the Parley backend."""

from .storage import BlobStore, LocalBlobStore, get_blob_store, store_attachment

__all__ = ["BlobStore", "LocalBlobStore", "get_blob_store", "store_attachment"]
