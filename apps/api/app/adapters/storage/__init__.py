"""File storage adapters."""

from .base import FileStorage, StoredObject, unique_filename
from .local import LocalFileStorage
from .s3 import S3FileStorage

__all__ = [
    "FileStorage",
    "LocalFileStorage",
    "S3FileStorage",
    "StoredObject",
    "unique_filename",
]
