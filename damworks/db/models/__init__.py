from damworks.db.models.asset import Asset, AssetType
from damworks.db.models.asset_version import AssetVersion, ProcessingStatus
from damworks.db.models.associations import (
    ASSOCIATION_TABLES,
    Audience,
    Tag,
    asset_audience_map,
    asset_locale_map,
    asset_region_map,
    asset_tag_map,
)
from damworks.db.models.download_event import DownloadEvent
from damworks.db.models.job import JobStatus, ProcessingJob

__all__ = ["ASSOCIATION_TABLES", "Asset", "AssetType", "AssetVersion", "Audience", "DownloadEvent", "JobStatus", "ProcessingJob", "ProcessingStatus", "Tag", "asset_audience_map", "asset_locale_map", "asset_region_map", "asset_tag_map"]
