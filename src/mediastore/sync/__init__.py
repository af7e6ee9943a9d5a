"""Batch media sync from storage URLs into a local directory."""

from mediastore.sync.media_sync import (
    ManifestRecordSource,
    MediaRecordSource,
    SyncOptions,
    SyncSummary,
    normalize_etag,
    normalize_persistent_path,
    run_media_sync,
    select_sync_targets,
)

__all__ = [
    "ManifestRecordSource",
    "MediaRecordSource",
    "SyncOptions",
    "SyncSummary",
    "normalize_etag",
    "normalize_persistent_path",
    "run_media_sync",
    "select_sync_targets",
]
