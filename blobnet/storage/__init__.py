"""Storage node collaborator."""

from .allocations import AllocationRecord, AllocationStore
from .blobstore import BlobStore, MapBlobStore
from .service import StorageNode

__all__ = ["AllocationRecord", "AllocationStore", "BlobStore", "MapBlobStore", "StorageNode"]
