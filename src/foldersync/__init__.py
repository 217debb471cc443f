"""Two-way synchronization of a local folder with a Google Drive folder."""

__version__ = "1.0.0"

from .core.sync_engine import SyncEngine

__all__ = ["SyncEngine", "__version__"]
