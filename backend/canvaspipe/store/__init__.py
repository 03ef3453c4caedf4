from canvaspipe.store.assets import AssetStore, ExportedAsset
from canvaspipe.store.canvases import CanvasRegistry, normalize_canvas_title
from canvaspipe.store.gallery import GalleryStore
from canvaspipe.store.persistence import Cooldown, PersistenceLayer, StorageReport, StorageStats
from canvaspipe.store.state import AppState, utc_now

__all__ = [
    "AppState",
    "AssetStore",
    "CanvasRegistry",
    "Cooldown",
    "ExportedAsset",
    "GalleryStore",
    "PersistenceLayer",
    "StorageReport",
    "StorageStats",
    "normalize_canvas_title",
    "utc_now",
]
