"""API schema package."""

from dataset_gateway.api.schemas.uploads import HealthResponse, UploadResponse

__all__ = ["UploadResponse", "HealthResponse"]
