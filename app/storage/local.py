# Module: local
# License: MIT (Listing Studio project)
# Description: Serve the static client shell from the local filesystem, with index.html fallback.
# Platform: Server
# Dependencies: fastapi, pathlib

"""
Local Storage: serves the client shell (public/) from the local filesystem.
Unknown non-API paths fall back to index.html so client-side routes load.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import FileResponse

from pipeline.errors import StudioError

logger = logging.getLogger("studio.shell")

mimetypes.add_type("application/manifest+json", ".webmanifest")

INDEX_FILE = "index.html"


def resolve_asset(public_dir: Path, path: str) -> Optional[Path]:
    """
    Map a request path onto a file under ``public_dir``.
    Returns None for directories, missing files and paths escaping the root.
    """
    root = public_dir.resolve()
    candidate = (root / path.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    if candidate.is_file():
        return candidate
    return None


def setup_shell(app: FastAPI, public_dir: str) -> None:
    """
    Register the catch-all shell route. Must be called after the API routes.
    """
    root = Path(public_dir)
    if not (root / INDEX_FILE).exists():
        logger.warning("Shell directory has no %s: %s", INDEX_FILE, root)

    @app.get("/{path:path}", include_in_schema=False)
    async def shell(path: str):
        asset = resolve_asset(root, path)
        if asset is None:
            asset = resolve_asset(root, INDEX_FILE)
        if asset is None:
            raise StudioError("Not found", status_code=404)
        return FileResponse(str(asset))

    logger.info("Client shell served from %s", root)
