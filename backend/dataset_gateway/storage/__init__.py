"""Working-directory storage for uploads and pipeline artifacts."""

from dataset_gateway.storage.local import ArtifactStorage, UploadedFile

__all__ = ["ArtifactStorage", "UploadedFile"]
