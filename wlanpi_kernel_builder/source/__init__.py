"""Kernel source handling.

This module handles:
- Cloning or hard-resetting the kernel working tree
- Applying ordered patch sets
"""

from wlanpi_kernel_builder.source.patches import PatchApplyError, apply_patches
from wlanpi_kernel_builder.source.sync import SourceSyncError, SyncResult, sync_source

__all__ = [
    "PatchApplyError",
    "SourceSyncError",
    "SyncResult",
    "apply_patches",
    "sync_source",
]
