from .asset import Asset, AssetMetadata, AssetStatus, AssetVersion

__all__ = ["Asset", "AssetMetadata", "AssetStatus", "AssetVersion"]
