# Module: test_offline_cache
# License: MIT (Listing Studio project)
# Description: Offline shell cache tests (install, activate, request strategies).
# Dependencies: pytest, httpx

"""
tests/test_offline_cache.py
Assert:
  - Install stores the whole manifest, or nothing
  - Activating a new generation purges older ones
  - /api/ responses are never stored and always go to the network
  - Documents are network-first, other assets cache-first
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.offline_cache import (
    SHELL_ASSETS,
    CachedAsset,
    DirectoryCacheStorage,
    MemoryCacheStorage,
    OfflineAssetCache,
)
from pipeline.orchestrator import StudioClient


class FakeNetwork:
    """Async fetch stand-in with an on/off switch."""

    def __init__(self):
        self.online = True
        self.calls = []
        self.bodies = {}
        self.status = {}

    async def __call__(self, path: str) -> CachedAsset:
        self.calls.append(path)
        if not self.online:
            raise httpx.ConnectError("offline")
        body = self.bodies.get(path, f"body of {path}".encode())
        return CachedAsset(path, self.status.get(path, 200), body, "text/plain")


def _installed_cache(storage=None, generation="listing-studio-v1"):
    cache = OfflineAssetCache(storage=storage, generation=generation)
    network = FakeNetwork()
    asyncio.run(cache.install(network))
    cache.activate()
    return cache, network


class TestInstallActivate:

    def test_install_stores_manifest(self):
        cache = OfflineAssetCache()
        installed = asyncio.run(cache.install(FakeNetwork()))

        assert installed == list(SHELL_ASSETS)
        assert sorted(cache.storage.entries(cache.generation)) == sorted(SHELL_ASSETS)
        assert not cache.controlling

    def test_install_is_all_or_nothing(self):
        cache = OfflineAssetCache()
        network = FakeNetwork()
        network.status["/styles.css"] = 404

        with pytest.raises(RuntimeError, match="/styles.css"):
            asyncio.run(cache.install(network))
        assert cache.storage.keys() == []

    def test_install_network_error(self):
        network = FakeNetwork()
        network.online = False
        with pytest.raises(RuntimeError):
            asyncio.run(OfflineAssetCache().install(network))

    def test_activate_purges_older_generations(self):
        storage = MemoryCacheStorage()
        _installed_cache(storage, generation="listing-studio-v1")
        v2, _ = _installed_cache(storage, generation="listing-studio-v2")

        assert storage.keys() == ["listing-studio-v2"]
        assert v2.controlling


class TestHandleFetch:

    def test_not_controlling_passes_through(self):
        cache = OfflineAssetCache()
        network = FakeNetwork()
        asyncio.run(cache.handle_fetch("/styles.css", network))
        asyncio.run(cache.handle_fetch("/styles.css", network))
        assert network.calls == ["/styles.css", "/styles.css"]
        assert cache.storage.keys() == []

    def test_api_never_cached(self):
        cache, network = _installed_cache()
        network.calls.clear()

        url = "http://localhost:8000/api/health?x=1"
        for _ in range(2):
            asset = asyncio.run(cache.handle_fetch(url, network))
            assert asset.ok
        assert network.calls == [url, url]
        assert "/api/health" not in cache.storage.entries(cache.generation)

    def test_api_failure_propagates_offline(self):
        cache, network = _installed_cache()
        network.online = False
        with pytest.raises(httpx.ConnectError):
            asyncio.run(cache.handle_fetch("/api/generate-listing", network))

    def test_document_network_first(self):
        cache, network = _installed_cache()
        network.bodies["/"] = b"fresh index"

        asset = asyncio.run(cache.handle_fetch("/", network))
        assert asset.body == b"fresh index"
        assert cache.storage.get(cache.generation, "/").body == b"fresh index"

    def test_document_falls_back_offline(self):
        cache, network = _installed_cache()
        network.online = False

        asset = asyncio.run(cache.handle_fetch("/index.html", network))
        assert asset.body == b"body of /index.html"

    def test_document_offline_without_copy_raises(self):
        cache = OfflineAssetCache(manifest=())
        cache.activate()
        network = FakeNetwork()
        network.online = False
        with pytest.raises(httpx.ConnectError):
            asyncio.run(cache.handle_fetch("/", network))

    def test_asset_cache_first(self):
        cache, network = _installed_cache()
        network.calls.clear()

        asset = asyncio.run(cache.handle_fetch("/styles.css", network))
        assert asset.body == b"body of /styles.css"
        assert network.calls == []

    def test_asset_stored_after_first_fetch(self):
        cache, network = _installed_cache()
        network.calls.clear()

        asyncio.run(cache.handle_fetch("/icons/icon-192.png", network))
        asyncio.run(cache.handle_fetch("/icons/icon-192.png", network))
        assert network.calls == ["/icons/icon-192.png"]

    def test_query_kept_for_network_and_dropped_for_key(self):
        cache, network = _installed_cache()
        network.calls.clear()

        asyncio.run(cache.handle_fetch("/icons/logo.svg?v=2", network))
        asyncio.run(cache.handle_fetch("/icons/logo.svg?v=3", network))
        assert network.calls == ["/icons/logo.svg?v=2"]
        assert "/icons/logo.svg" in cache.storage.entries(cache.generation)

    def test_error_responses_not_stored(self):
        cache, network = _installed_cache()
        network.status["/missing.js"] = 404

        asset = asyncio.run(cache.handle_fetch("/missing.js", network))
        assert asset.status == 404
        assert "/missing.js" not in cache.storage.entries(cache.generation)


class TestDirectoryStorage:

    def test_survives_reopen(self, tmp_path):
        _installed_cache(DirectoryCacheStorage(str(tmp_path)))

        reopened = OfflineAssetCache(storage=DirectoryCacheStorage(str(tmp_path)))
        reopened.activate()
        network = FakeNetwork()
        network.online = False

        asset = asyncio.run(reopened.handle_fetch("/", network))
        assert asset.body == b"body of /"
        assert asset.content_type == "text/plain"

    def test_corrupted_index_treated_as_empty(self, tmp_path):
        storage = DirectoryCacheStorage(str(tmp_path))
        cache, network = _installed_cache(storage)
        (tmp_path / cache.generation / "index.json").write_text('{"/": {"fi', encoding="utf-8")

        assert storage.get(cache.generation, "/") is None
        asset = asyncio.run(cache.handle_fetch("/styles.css", network))
        assert asset.ok
        assert storage.entries(cache.generation) == ["/styles.css"]

    def test_index_written_without_leftovers(self, tmp_path):
        storage = DirectoryCacheStorage(str(tmp_path))
        cache, _ = _installed_cache(storage)
        names = sorted(p.name for p in (tmp_path / cache.generation).iterdir())
        assert "index.json" in names
        assert not [n for n in names if n.endswith(".tmp")]

    def test_purge_removes_directory(self, tmp_path):
        storage = DirectoryCacheStorage(str(tmp_path))
        _installed_cache(storage, generation="old")
        _installed_cache(storage, generation="new")

        assert storage.keys() == ["new"]
        assert not (tmp_path / "old").exists()


class TestStudioClientCache:

    @staticmethod
    def _shell_transport(calls):
        def handler(request):
            calls.append(request.url.path)
            if request.url.path.startswith("/api/"):
                return httpx.Response(200, json={"ok": True, "hasKey": True})
            return httpx.Response(200, text=f"asset {request.url.path}",
                                  headers={"content-type": "text/css"})
        return httpx.MockTransport(handler)

    def test_sync_shell_and_cached_asset(self):
        calls = []
        cache = OfflineAssetCache()
        client = StudioClient(transport=self._shell_transport(calls), cache=cache)

        installed = asyncio.run(client.sync_shell())
        assert installed == list(SHELL_ASSETS)
        assert cache.controlling

        calls.clear()
        asset = asyncio.run(client.get_asset("/styles.css"))
        assert asset.body == b"asset /styles.css"
        assert asset.content_type == "text/css"
        assert calls == []

    def test_sync_shell_requires_cache(self):
        client = StudioClient(transport=self._shell_transport([]))
        with pytest.raises(RuntimeError):
            asyncio.run(client.sync_shell())
