"""
Artifact storage: content-addressable blobs plus versioned metadata.
"""

from modelvault.kernel.artifacts.blob_store import BlobStore, hash_blob, validate_hash
from modelvault.kernel.artifacts.metadata_store import ArtifactMetadataStore
from modelvault.kernel.artifacts.artifact_service import ArtifactService

__all__ = [
    "ArtifactMetadataStore",
    "ArtifactService",
    "BlobStore",
    "hash_blob",
    "validate_hash",
]
