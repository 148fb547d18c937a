import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)


class LocalStorage:
    """Blobs on the local filesystem under a single root directory."""

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, relative_path: str) -> Path:
        target = (self.root / relative_path).resolve()
        if self.root not in target.parents:
            raise ValueError(f"path escapes storage root: {relative_path}")
        return target

    def save(self, data: bytes, relative_path: str, content_type: str | None = None) -> None:
        target = self._resolve(relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # write then rename so readers never see a partial file
        tmp = target.with_name(target.name + ".part")
        with open(tmp, "wb") as fh:
            fh.write(data)
        os.replace(tmp, target)

    def delete(self, relative_path: str) -> bool:
        target = self._resolve(relative_path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        return True

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).is_file()

    def url_for(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{relative_path}"
