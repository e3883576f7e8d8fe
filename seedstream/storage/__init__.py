"""
Object storage for published HLS output.
"""

from .s3 import ObjectStore, S3ObjectStore
from .uploader import HLSUploader, PLAYLIST_CONTENT_TYPE, SEGMENT_CONTENT_TYPE

__all__ = [
    "ObjectStore",
    "S3ObjectStore",
    "HLSUploader",
    "PLAYLIST_CONTENT_TYPE",
    "SEGMENT_CONTENT_TYPE",
]
