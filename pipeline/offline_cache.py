# Module: offline_cache
# License: MIT (Listing Studio project)
# Description: Versioned offline cache of the client shell assets; API traffic always bypasses it.
# Platform: Client
# Dependencies: httpx

"""
Offline Asset Cache
===================
One named cache generation is live at a time. Installing a generation stores
every asset of the shell manifest; activating it deletes every other
generation and takes over request handling.

Request strategy once active:
    /api/...          network only, never stored
    shell documents   network first, cache on network failure
    other assets      cache first, stored after the first successful fetch

Any change to SHELL_ASSETS requires a new CACHE_GENERATION name.
"""

import hashlib
import json
import logging
import os
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger("studio.cache")

CACHE_GENERATION = "listing-studio-v1"
API_PREFIX = "/api/"
SHELL_ASSETS = (
    "/",
    "/index.html",
    "/styles.css",
    "/manifest.webmanifest",
)
SHELL_DOCUMENTS = frozenset({"/", "/index.html"})

NETWORK_ERRORS = (httpx.TransportError, OSError)


@dataclass(frozen=True)
class CachedAsset:
    path: str
    status: int
    body: bytes
    content_type: str = "application/octet-stream"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


Fetch = Callable[[str], Awaitable[CachedAsset]]


def request_path(url_or_path: str) -> str:
    """Path component of a URL or path, without query or fragment."""
    return urlsplit(url_or_path).path or "/"


class MemoryCacheStorage:
    """In-process cache storage: generation name → path → asset."""

    def __init__(self):
        self._caches: Dict[str, Dict[str, CachedAsset]] = {}

    def keys(self) -> List[str]:
        return list(self._caches)

    def entries(self, name: str) -> List[str]:
        return list(self._caches.get(name, {}))

    def get(self, name: str, path: str) -> Optional[CachedAsset]:
        return self._caches.get(name, {}).get(path)

    def put(self, name: str, asset: CachedAsset) -> None:
        self._caches.setdefault(name, {})[asset.path] = asset

    def create(self, name: str) -> None:
        self._caches.setdefault(name, {})

    def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None


class DirectoryCacheStorage:
    """
    On-disk cache storage so the shell survives between CLI runs.

    Layout: <root>/<generation>/index.json plus one blob per asset.
    """

    INDEX = "index.json"

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _index_path(self, name: str) -> Path:
        return self.root / name / self.INDEX

    def _load_index(self, name: str) -> dict:
        path = self._index_path(name)
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                index = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable cache index %s (%s), starting empty", path, e)
            return {}
        return index if isinstance(index, dict) else {}

    def _save_index(self, name: str, index: dict) -> None:
        path = self._index_path(name)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2)
        os.replace(str(tmp), str(path))

    def keys(self) -> List[str]:
        return sorted(p.name for p in self.root.iterdir() if (p / self.INDEX).exists())

    def entries(self, name: str) -> List[str]:
        return list(self._load_index(name))

    def get(self, name: str, path: str) -> Optional[CachedAsset]:
        meta = self._load_index(name).get(path)
        if meta is None:
            return None
        blob = self.root / name / meta["file"]
        if not blob.exists():
            return None
        return CachedAsset(
            path=path,
            status=meta["status"],
            body=blob.read_bytes(),
            content_type=meta["content_type"],
        )

    def put(self, name: str, asset: CachedAsset) -> None:
        self.create(name)
        index = self._load_index(name)
        blob_name = hashlib.sha1(asset.path.encode("utf-8")).hexdigest() + ".bin"
        (self.root / name / blob_name).write_bytes(asset.body)
        index[asset.path] = {
            "file": blob_name,
            "status": asset.status,
            "content_type": asset.content_type,
        }
        self._save_index(name, index)

    def create(self, name: str) -> None:
        (self.root / name).mkdir(parents=True, exist_ok=True)
        if not self._index_path(name).exists():
            self._save_index(name, {})

    def delete(self, name: str) -> bool:
        folder = self.root / name
        if not folder.exists():
            return False
        shutil.rmtree(str(folder), ignore_errors=True)
        return True


class OfflineAssetCache:
    def __init__(
        self,
        storage=None,
        generation: str = CACHE_GENERATION,
        manifest: Iterable[str] = SHELL_ASSETS,
        api_prefix: str = API_PREFIX,
    ):
        self.storage = storage if storage is not None else MemoryCacheStorage()
        self.generation = generation
        self.manifest = tuple(manifest)
        self.api_prefix = api_prefix
        self.controlling = False

    def is_api(self, path: str) -> bool:
        path = request_path(path)
        return path.startswith(self.api_prefix) or path == self.api_prefix.rstrip("/")

    def _store(self, asset: CachedAsset) -> None:
        path = request_path(asset.path)
        if self.is_api(path) or not asset.ok:
            return
        self.storage.put(self.generation, replace(asset, path=path))

    async def install(self, fetch: Fetch) -> List[str]:
        """
        Fetch and store every manifest asset in this generation.

        All-or-nothing: if one asset fails, nothing is stored.

        Raises:
            RuntimeError: if any manifest asset cannot be fetched.
        """
        fetched: List[CachedAsset] = []
        for path in self.manifest:
            try:
                asset = await fetch(path)
            except NETWORK_ERRORS as e:
                raise RuntimeError(f"Cache install failed for {path}: {e}") from e
            if not asset.ok:
                raise RuntimeError(f"Cache install failed for {path}: HTTP {asset.status}")
            fetched.append(asset)

        self.storage.create(self.generation)
        for asset in fetched:
            self._store(asset)

        logger.info("Installed cache %s (%d assets)", self.generation, len(fetched))
        return [a.path for a in fetched]

    def activate(self) -> List[str]:
        """Delete every other generation and start handling requests."""
        stale = [k for k in self.storage.keys() if k != self.generation]
        for name in stale:
            self.storage.delete(name)
        self.controlling = True
        if stale:
            logger.info("Activated %s, purged %s", self.generation, ", ".join(stale))
        return stale

    async def handle_fetch(self, url_or_path: str, fetch: Fetch) -> CachedAsset:
        """
        Answer one request. ``fetch`` always gets the full URL, query included;
        the bare path only decides the strategy and keys the cache.
        """
        path = request_path(url_or_path)

        if not self.controlling or self.is_api(path):
            return await fetch(url_or_path)

        if path in SHELL_DOCUMENTS:
            try:
                asset = await fetch(url_or_path)
            except NETWORK_ERRORS:
                cached = self.storage.get(self.generation, path)
                if cached is None:
                    raise
                logger.info("Offline: serving %s from cache", path)
                return cached
            self._store(asset)
            return asset

        cached = self.storage.get(self.generation, path)
        if cached is not None:
            return cached

        asset = await fetch(url_or_path)
        self._store(asset)
        return asset
