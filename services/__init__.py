# SetupDiff v0.4.0
"""
Services package for SetupDiff.
Contains the background service that keeps the setup index in sync with disk.
"""
from services.watcher import (
    DirectoryWatcher,
    EventDebouncer,
    IndexService,
    IndexUpdate,
    SetupFileHandler,
    discover_setup_files
)

__all__ = [
    "DirectoryWatcher",
    "EventDebouncer",
    "IndexService",
    "IndexUpdate",
    "SetupFileHandler",
    "discover_setup_files"
]
