from dropzone_upload.core.config import Settings
from .internal import InternalStorage
from .base import BaseStorage
from dropzone_upload.services.extension_policy import ExtensionPolicy


def create_storage(config: Settings, policy: ExtensionPolicy) -> BaseStorage:
    return InternalStorage(
        root=config.PERSISTENT_LOCAL_STORAGE_PATH,
        index_dir=config.ASSET_INDEX_PATH,
        base_url=config.UPLOAD_SERVICE_BASE_URL,
        policy=policy,
        use_yearmonth_folders=config.UPLOADS_USE_YEARMONTH_FOLDERS,
    )
