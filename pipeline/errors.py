# Module: errors
# License: MIT (Listing Studio project)
# Description: Error taxonomy shared by the API and the client pipeline.
# Platform: Server + Client
# Dependencies: none

"""
Error Taxonomy
==============
Every failure the API reports carries an HTTP status and a message that is
shown to the user verbatim. Handlers serialize them as {"ok": false, "error": ...}.

    UserInputError      400/413  no images, unsupported format, oversized image
    ConfigurationError  400      provider credential missing
    ProviderError       4xx/5xx  provider call failed or returned nothing usable
    RunInProgressError  409      a pipeline run is already in flight (client)
    ApiError            any      non-2xx response seen by the client
"""

from typing import Optional


class StudioError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message}


class UserInputError(StudioError):
    status_code = 400


class ConfigurationError(StudioError):
    status_code = 400


class ProviderError(StudioError):
    status_code = 500


class RunInProgressError(StudioError):
    status_code = 409


class ApiError(StudioError):
    """Raised by the HTTP client when the server answers with a non-2xx status."""
