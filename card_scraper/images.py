"""Card image download and storage."""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from card_scraper.browser import DEFAULT_USER_AGENT
from card_scraper.config_loader import get_image_config
from card_scraper.normalizer import to_base36

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"
DEFAULT_PATH_PREFIX = "credit-cards/images"
IMAGE_EXTENSIONS = ("webp", "png", "jpg", "jpeg", "avif")
CONTENT_TYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "avif": "image/avif",
}
METADATA_SUFFIX = ".meta.json"


class LocalImageStore:
    """Filesystem object store with public URLs.

    Each object gets a JSON sidecar recording its content type and
    Cache-Control header, which the HTTP layer serves alongside the file.
    """

    def __init__(self, root: str, public_base_url: str, cache_control: str = DEFAULT_CACHE_CONTROL):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.cache_control = cache_control

    def _path_for(self, public_url: str) -> Optional[Path]:
        prefix = self.public_base_url + "/"
        if not public_url or not public_url.startswith(prefix):
            return None
        relative = public_url[len(prefix):]
        target = (self.root / relative).resolve()
        if self.root.resolve() not in target.parents:
            return None
        return target

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path.lstrip('/')}"

    def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` at ``path`` and return its public URL."""
        target = self.root / path.lstrip("/")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        metadata = {"contentType": content_type, "cacheControl": self.cache_control}
        Path(str(target) + METADATA_SUFFIX).write_text(json.dumps(metadata), encoding="utf-8")
        return self.public_url(path)

    def metadata(self, public_url: str) -> Optional[Dict[str, Any]]:
        target = self._path_for(public_url)
        if target is None:
            return None
        sidecar = Path(str(target) + METADATA_SUFFIX)
        if not sidecar.exists():
            return None
        return json.loads(sidecar.read_text(encoding="utf-8"))

    def exists(self, public_url: str) -> bool:
        target = self._path_for(public_url)
        return target is not None and target.exists()

    def delete(self, public_url: str) -> bool:
        """Remove an object by public URL; False when it does not exist."""
        target = self._path_for(public_url)
        if target is None or not target.exists():
            return False
        target.unlink()
        sidecar = Path(str(target) + METADATA_SUFFIX)
        if sidecar.exists():
            sidecar.unlink()
        logger.info(f"Image deleted: {public_url}")
        return True


def image_extension(image_url: str) -> str:
    """File extension taken from the source URL path, defaulting to webp."""
    path = urlsplit(image_url).path.lower()
    for extension in IMAGE_EXTENSIONS:
        if path.endswith("." + extension):
            return extension
    return "webp"


class ImageProcessor:
    """Downloads a card image and re-hosts it in the image store."""

    def __init__(
        self,
        store: LocalImageStore,
        path_prefix: str = DEFAULT_PATH_PREFIX,
        timeout: int = 30,
        retry_attempts: int = 3,
        http=None,
    ):
        self.store = store
        self.path_prefix = path_prefix.strip("/")
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.http = http or requests

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ImageProcessor":
        image_config = get_image_config(config)
        store = LocalImageStore(
            root=image_config.get("root", "data/images"),
            public_base_url=image_config.get("public_base_url", "http://localhost:8002/images"),
            cache_control=image_config.get("cache_control", DEFAULT_CACHE_CONTROL),
        )
        return cls(
            store,
            path_prefix=image_config.get("path_prefix", DEFAULT_PATH_PREFIX),
            timeout=int(image_config.get("download_timeout", 30)),
            retry_attempts=int(image_config.get("retry_attempts", 3)),
        )

    def download(self, image_url: str) -> bytes:
        """Fetch image bytes, retrying connection failures and timeouts."""
        for attempt in Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True,
        ):
            with attempt:
                response = self.http.get(
                    image_url,
                    headers={"User-Agent": DEFAULT_USER_AGENT},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.content
        return b""

    def object_path(self, image_url: str, slug: str) -> str:
        extension = image_extension(image_url)
        timestamp = to_base36(int(time.time() * 1000))
        return f"{self.path_prefix}/{slug}-{timestamp}.{extension}"

    def process(self, image_url: Optional[str], slug: str) -> str:
        """Download and store a card image; returns its public URL or "" on failure."""
        if not image_url:
            return ""
        try:
            data = self.download(image_url)
            if not data:
                logger.warning(f"Empty image response for {slug}: {image_url}")
                return ""
            path = self.object_path(image_url, slug)
            public_url = self.store.upload(data, path, CONTENT_TYPES[image_extension(image_url)])
            logger.info(f"Image uploaded for {slug}: {public_url}")
            return public_url
        except (requests.RequestException, OSError) as e:
            logger.warning(f"Image processing failed for {slug}: {e}")
            return ""
