from unisphere.config import settings
from unisphere.storage.local import LocalStorage
from unisphere.storage.s3 import S3Storage


def build_storage():
    if settings.STORAGE_BACKEND == "s3":
        return S3Storage()
    return LocalStorage(settings.STORAGE_PATH, settings.PUBLIC_BASE_URL)
