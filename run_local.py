#!/usr/bin/env python3
"""
Listing Studio -- Local Development Server
==========================================
Loads .env, reports the resolved settings and starts uvicorn.

Usage:
    python run_local.py              # auto-reload on app/ and pipeline/
    python run_local.py --no-reload
    python run_local.py --port 9000
"""

import argparse
import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

REQUIRED_MODULES = ("fastapi", "uvicorn", "PIL", "pillow_heif", "openai", "yaml", "httpx")


def load_env(env_file: Path = PROJECT_ROOT / ".env") -> bool:
    """Copy KEY=value lines from ``env_file`` into os.environ without overriding."""
    if not env_file.exists():
        return False
    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("\"'"))
    return True


def missing_modules():
    missing = []
    for name in REQUIRED_MODULES:
        try:
            __import__(name)
        except ImportError:
            missing.append(name)
    return missing


def main():
    parser = argparse.ArgumentParser(description="Listing Studio dev server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", action="store_true")
    args = parser.parse_args()

    env_loaded = load_env()
    os.environ.setdefault("LOG_FORMAT", "text")

    missing = missing_modules()
    if missing:
        print(f"[WARN] missing modules: {', '.join(missing)} (pip install -e .)")
        return 1

    from pipeline.platform_utils import load_settings

    settings = load_settings()
    print(f"Listing Studio on http://localhost:{args.port}  (.env {'loaded' if env_loaded else 'not found'})")
    print(f"  text model {settings.text_model}, reasoning {settings.reasoning_effort or 'off'}, "
          f"image model {settings.image_model}")
    if not settings.has_key:
        print("  OPENAI_API_KEY not set: only useAi=false (demo mode) will answer")

    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        reload_dirs=[str(PROJECT_ROOT / "app"), str(PROJECT_ROOT / "pipeline")],
        workers=1,
        log_level="info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
