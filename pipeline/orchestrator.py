# Module: orchestrator
# License: MIT (Listing Studio project)
# Description: Client pipeline: normalize photos → listing → optional mannequin, one run at a time.
# Platform: Client
# Dependencies: httpx, asyncio

"""
Pipeline Orchestrator: drives one user-initiated run against the API.
Updates the RunState at each stage and notifies an optional listener.

Stage 1 (listing) always runs once a run starts. Stage 2 (mannequin) runs only
when both AI and mannequin are enabled, and a failure there leaves the
listing from Stage 1 in place.
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence

import httpx

from pipeline.errors import ApiError, RunInProgressError, StudioError, UserInputError
from pipeline.generation import ListingResult
from pipeline.normalize import (
    DEFAULT_MAX_DIMENSION,
    DEFAULT_QUALITY,
    RawImage,
    normalize_images_async,
)
from pipeline.offline_cache import CachedAsset, OfflineAssetCache
from pipeline.payload import (
    MAX_IMAGES_PER_REQUEST,
    build_listing_payload,
    build_mannequin_payload,
)
from pipeline.prompts import DEFAULT_GARMENT
from pipeline.run_state import MannequinStatus, RunOptions, RunStage, RunState

logger = logging.getLogger("studio.orchestrator")

HEALTH_PATH = "/api/health"
LISTING_PATH = "/api/generate-listing"
MANNEQUIN_PATH = "/api/generate-mannequin"

DEFAULT_TIMEOUT = httpx.Timeout(300.0, connect=10.0)

STAGE_ERRORS = (StudioError, httpx.HTTPError)


class StudioClient:
    """
    Async HTTP client for the Listing Studio API.

    Shell assets go through the offline cache when one is attached; API
    calls never do.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[OfflineAssetCache] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.cache = cache

    async def __aenter__(self) -> "StudioClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def health(self) -> dict:
        resp = await self._http.get(HEALTH_PATH)
        resp.raise_for_status()
        return resp.json()

    async def readiness_message(self) -> str:
        try:
            h = await self.health()
        except (httpx.HTTPError, ValueError):
            return "api unreachable"
        if h.get("ok") and h.get("hasKey"):
            return "api ok (ai active)"
        if h.get("ok"):
            return "api ok (set OPENAI_API_KEY on the server)"
        return "api unreachable"

    async def post_json(self, path: str, body: dict) -> dict:
        """
        POST a JSON body and return the decoded JSON answer.

        Raises:
            ApiError: on a non-2xx status, with the server's error text.
            httpx.HTTPError: on network failure.
        """
        resp = await self._http.post(path, json=body)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if resp.is_error:
            raise ApiError(data.get("error") or f"HTTP {resp.status_code}", status_code=resp.status_code)
        return data

    async def _fetch_asset(self, path: str) -> CachedAsset:
        resp = await self._http.get(path)
        return CachedAsset(
            path=path,
            status=resp.status_code,
            body=resp.content,
            content_type=resp.headers.get("content-type", "application/octet-stream"),
        )

    async def get_asset(self, path: str) -> CachedAsset:
        if self.cache is None:
            return await self._fetch_asset(path)
        return await self.cache.handle_fetch(path, self._fetch_asset)

    async def sync_shell(self) -> list:
        """Install the shell into the attached cache and activate it."""
        if self.cache is None:
            raise RuntimeError("No offline cache attached")
        installed = await self.cache.install(self._fetch_asset)
        self.cache.activate()
        return installed


class PipelineOrchestrator:
    """
    Single-flight runner for the two-stage generation pipeline.

    Args:
        client: API client.
        max_images: Photos kept per run; extra photos are dropped.
        max_dimension: Longest side after normalization.
        quality: JPEG quality used by the normalizer.
        listener: Called with the RunState after every transition.
    """

    def __init__(
        self,
        client: StudioClient,
        max_images: int = MAX_IMAGES_PER_REQUEST,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        quality: int = DEFAULT_QUALITY,
        listener: Optional[Callable[[RunState], None]] = None,
    ):
        self.client = client
        self.max_images = max_images
        self.max_dimension = max_dimension
        self.quality = quality
        self.listener = listener
        self.state: Optional[RunState] = None
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _advance(self, state: RunState, stage: RunStage) -> None:
        state.advance(stage)
        logger.info("[%s] %s", state.run_id[:8], stage.value,
                    extra={"run_id": state.run_id, "stage": stage.value})
        self._notify(state)

    def _fail(self, state: RunState, message: str) -> None:
        state.fail(message)
        logger.error("[%s] %s failed: %s", state.run_id[:8], state.failed_stage.value, message,
                     extra={"run_id": state.run_id, "stage": state.failed_stage.value})
        self._notify(state)

    def _notify(self, state: RunState) -> None:
        if self.listener is not None:
            self.listener(state)

    async def run(self, raw_images: Sequence[RawImage], options: RunOptions = RunOptions()) -> RunState:
        """
        Run the pipeline on ``raw_images``.

        Raises:
            UserInputError: if no photo is supplied.
            RunInProgressError: if another run is in flight.
        """
        if not raw_images:
            raise UserInputError("Add at least one photo.")
        if self._lock.locked():
            raise RunInProgressError("A run is already in progress.")

        async with self._lock:
            state = RunState()
            self.state = state
            await self._run(state, list(raw_images), options)
            return state

    async def _run(self, state: RunState, raw_images: list, options: RunOptions) -> None:
        # ── Collect ──
        self._advance(state, RunStage.COLLECTING_IMAGES)
        state.images = await normalize_images_async(
            raw_images[: self.max_images], self.max_dimension, self.quality,
        )

        # ── Stage 1: Listing ──
        self._advance(state, RunStage.LISTING_REQUESTED)
        try:
            data = await self.client.post_json(
                LISTING_PATH,
                build_listing_payload(state.images, extra=options.extra, use_ai=options.use_ai),
            )
        except STAGE_ERRORS as e:
            self._fail(state, f"Listing generation failed: {e}")
            return

        state.listing = ListingResult.from_dict(data)
        self._advance(state, RunStage.LISTING_RECEIVED)

        if not (options.use_ai and options.use_mannequin):
            state.mannequin_status = MannequinStatus.DISABLED
            self._advance(state, RunStage.DONE)
            return

        # ── Stage 2: Mannequin ──
        description = state.listing.mannequin_prompt or state.listing.title or DEFAULT_GARMENT
        self._advance(state, RunStage.MANNEQUIN_REQUESTED)
        try:
            data = await self.client.post_json(
                MANNEQUIN_PATH,
                build_mannequin_payload(state.images, description=description, gender=options.gender),
            )
        except STAGE_ERRORS as e:
            state.mannequin_status = MannequinStatus.FAILED
            self._fail(state, f"Mannequin generation failed: {e}")
            return

        state.mannequin_image = data.get("image_data_url") or None
        if state.mannequin_image:
            state.mannequin_status = MannequinStatus.GENERATED
        else:
            state.mannequin_status = MannequinStatus.EMPTY
            state.notices.append("No image returned.")
        self._advance(state, RunStage.MANNEQUIN_RECEIVED)
        self._advance(state, RunStage.DONE)
