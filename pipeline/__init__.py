# Module: pipeline
# License: MIT (Listing Studio project)
# Description: Listing Studio package: photo normalization, payloads, generation and client orchestration.
# Platform: Server + Client
# Dependencies: See pyproject.toml

"""
Listing Studio Pipeline Package
===============================
Provides the photo → listing → mannequin pipeline:
  - Image normalization (normalize)
  - Request payloads and ingestion (payload)
  - Provider wire shaping and admission control (transport)
  - Listing and mannequin generation (generation, prompts)
  - Client orchestration and offline shell cache (orchestrator, run_state, offline_cache)
"""

__version__ = "1.0.0"
__license__ = "MIT"
