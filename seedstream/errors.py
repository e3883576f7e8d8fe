"""
Error taxonomy for the SeedStream job pipeline.

Errors raised inside a job task never escape it: ingestion-class errors mark
the job failed, transcode and upload errors only skip the file being worked on.
"""


class SeedStreamError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(SeedStreamError):
    """Submission is neither a magnet URI nor a torrent-file payload."""


class IngestionError(SeedStreamError):
    """The torrent could not be acquired or the transfer failed fatally."""


class NoQualifyingFilesError(IngestionError):
    """The torrent contains no recognized video files."""


class TranscodeError(SeedStreamError):
    """ffmpeg reported a failure for one file."""


class UploadError(SeedStreamError):
    """Writing an artifact to the object store failed."""
