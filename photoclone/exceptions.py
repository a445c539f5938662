"""
Module: exceptions
Purpose: Custom exception hierarchy for photoclone.
"""


class PhotoCloneError(Exception):
    """Base exception for photoclone."""

    pass


class SetupError(PhotoCloneError):
    """Fatal: raised before any file is touched."""

    pass


class ConfigError(SetupError):
    pass


class ScanError(SetupError):
    pass


class PerFileError(PhotoCloneError):
    """Recorded against a single file; never aborts the batch."""

    pass


class MetadataError(PerFileError):
    pass


class CodecError(PerFileError):
    pass


class PlacementError(PerFileError):
    pass


class IngestionError(PhotoCloneError):
    pass


class GeoCacheSealedError(IngestionError):
    pass


class TransportError(PhotoCloneError):
    pass
