from damworks.controllers.assets import AssetController
from damworks.controllers.downloads import DownloadController
from damworks.controllers.queue import QueueController

__all__ = ["AssetController", "DownloadController", "QueueController"]
