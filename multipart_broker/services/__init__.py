from .multipart_service import (
    InvalidParameterError,
    MissingParameterError,
    MultipartConfig,
    MultipartError,
    MultipartService,
    UploadNotFoundError,
)
from .options import ComputedOptions, OperationOptions, StaticOptions

__all__ = [
    "ComputedOptions",
    "InvalidParameterError",
    "MissingParameterError",
    "MultipartConfig",
    "MultipartError",
    "MultipartService",
    "OperationOptions",
    "StaticOptions",
    "UploadNotFoundError",
]
