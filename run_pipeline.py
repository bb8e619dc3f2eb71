# Module: run_pipeline
# License: MIT (Listing Studio project)
# Description: Command-line client: photos in, listing text and mannequin PNG out.
# Platform: Client
# Dependencies: httpx, Pillow

"""
===================================
LISTING STUDIO CLIENT
File: run_pipeline.py
===================================

Normalizes local photos, runs the two-stage pipeline against a running API
and prints the listing. The mannequin photo is written next to --output.

Usage:
    python run_pipeline.py a.jpg b.heic c.png --gender femme
    python run_pipeline.py a.jpg --no-ai
    python run_pipeline.py a.jpg --cache-dir ~/.listing-studio/cache
"""

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from pipeline.dataurl import parse_data_url
from pipeline.errors import StudioError
from pipeline.normalize import load_raw_image
from pipeline.offline_cache import DirectoryCacheStorage, OfflineAssetCache
from pipeline.orchestrator import PipelineOrchestrator, StudioClient
from pipeline.platform_utils import setup_logging
from pipeline.run_state import RunOptions, RunState

logger = logging.getLogger("studio.cli")


def print_progress(state: RunState) -> None:
    print(f"  [{state.stage.value}]")


def print_result(state: RunState) -> None:
    print()
    print("=" * 60)
    if state.listing is not None:
        print(f"  Title:       {state.listing.title}")
        print(f"  Price:       {state.listing.price}")
        print()
        print(state.listing.description)
        print()
    print(f"  Mannequin:   {state.mannequin_status.value}")
    for notice in state.notices:
        print(f"  ! {notice}")
    print("=" * 60)


def save_mannequin(state: RunState, output: Path) -> None:
    if not state.mannequin_image:
        return
    data_url = parse_data_url(state.mannequin_image)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(base64.b64decode(data_url.payload))
    print(f"  Mannequin photo saved to: {output}")


async def run(args: argparse.Namespace) -> int:
    cache = None
    if args.cache_dir:
        cache = OfflineAssetCache(DirectoryCacheStorage(args.cache_dir))

    raws = [load_raw_image(p) for p in args.photos]
    options = RunOptions(
        use_ai=not args.no_ai,
        use_mannequin=not args.no_mannequin,
        gender=args.gender,
        extra=args.extra,
    )

    async with StudioClient(args.server, cache=cache) as client:
        print(f"  {await client.readiness_message()}")

        if cache is not None:
            try:
                installed = await client.sync_shell()
                print(f"  Offline shell cached ({len(installed)} assets)")
            except RuntimeError as e:
                logger.warning("Offline shell not refreshed: %s", e)

        orchestrator = PipelineOrchestrator(
            client,
            max_dimension=args.max_dim,
            quality=args.quality,
            listener=print_progress,
        )
        try:
            state = await orchestrator.run(raws, options)
        except StudioError as e:
            print(f"  Error: {e.message}")
            return 2

    print_result(state)
    save_mannequin(state, Path(args.output))

    if args.json:
        Path(args.json).write_text(json.dumps(state.to_dict(), indent=2, ensure_ascii=False),
                                   encoding="utf-8")
    return 0 if state.error is None else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Listing Studio client")
    parser.add_argument("photos", nargs="+", help="Garment photos (JPEG, PNG, WebP, HEIC)")
    parser.add_argument("--server", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--no-ai", action="store_true", help="Demo mode, no provider calls")
    parser.add_argument("--no-mannequin", action="store_true", help="Skip the mannequin photo")
    parser.add_argument("--gender", default="femme", help="Mannequin gender tag")
    parser.add_argument("--extra", default="", help="Extra notes for the listing")
    parser.add_argument("--max-dim", type=int, default=1600, help="Longest side after normalization")
    parser.add_argument("--quality", type=int, default=90, help="JPEG quality")
    parser.add_argument("--output", default="mannequin.png", help="Mannequin photo path")
    parser.add_argument("--json", default=None, help="Write the run state as JSON")
    parser.add_argument("--cache-dir", default=None, help="Offline shell cache directory")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(args.log_level, "text")
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
