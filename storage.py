"""
Asset storage for product images.

``upload`` returns the public URL of the stored blob and ``delete`` takes
that URL back. Files land under ``MEDIA_ROOT/<folder>/`` with uuid names and
are served by the app at ``MEDIA_URL``.
"""

import logging
import os
import uuid
from pathlib import Path
from urllib.parse import urlparse

import config

logger = logging.getLogger(__name__)


class AssetStorageError(Exception):
    pass


class LocalAssetStorage:
    def __init__(self, root: str, media_url: str, base_url: str):
        self.root = Path(root)
        self.media_url = "/" + media_url.strip("/")
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, folder: str, filename: str = "") -> str:
        ext = os.path.splitext(filename)[-1].lower() or ".png"
        relative = Path(folder.strip("/")) / f"{uuid.uuid4().hex}{ext}"
        target = self.root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise AssetStorageError(f"Could not store {filename or 'upload'}: {e}") from e
        return f"{self.base_url}{self.media_url}/{relative.as_posix()}"

    def _path_for(self, url: str) -> Path:
        path = urlparse(url).path
        if not path.startswith(self.media_url + "/"):
            raise AssetStorageError(f"{url} is not a stored asset")
        relative = Path(path[len(self.media_url) + 1:])
        if ".." in relative.parts:
            raise AssetStorageError(f"{url} is not a stored asset")
        return self.root / relative

    def delete(self, url: str) -> None:
        target = self._path_for(url)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("Asset %s already gone", url)
        except OSError as e:
            raise AssetStorageError(f"Could not delete {url}: {e}") from e


storage = LocalAssetStorage(config.MEDIA_ROOT, config.MEDIA_URL, config.PUBLIC_BASE_URL)


def get_storage() -> LocalAssetStorage:
    return storage


def discard_assets(asset_storage: LocalAssetStorage, urls) -> None:
    """Best-effort removal, used once the product no longer points at ``urls``."""
    for url in urls:
        if not url:
            continue
        try:
            asset_storage.delete(url)
        except AssetStorageError:
            logger.exception("Failed to delete asset %s", url)
