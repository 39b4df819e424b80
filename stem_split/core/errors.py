"""Exception hierarchy for the separation pipeline."""

from pathlib import Path
from typing import Optional, Union


class StemSplitError(Exception):
    """Base class for all pipeline errors.

    Carries the file involved and the pipeline stage that failed so callers
    can report where a request broke down.
    """

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        stage: Optional[str] = None,
    ):
        self.message = message
        self.path = Path(path) if path is not None else None
        self.stage = stage
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        parts.append(self.message)
        if self.path is not None:
            parts.append(f"({self.path})")
        return " ".join(parts)

    def with_path(self, path: Union[str, Path]) -> "StemSplitError":
        """Attach the file being processed if none is recorded yet."""
        if self.path is None:
            self.path = Path(path)
            self.args = (self._format(),)
        return self


class DecodeError(StemSplitError):
    """Input is missing, unreadable, corrupt or in an unsupported codec."""


class ResampleError(StemSplitError):
    """Resampling was requested with an invalid target rate."""


class InferenceError(StemSplitError):
    """Model load failed, device failed, or model output had the wrong shape."""


class IoError(StemSplitError, OSError):
    """Writing an output file failed."""


class ConfigError(StemSplitError):
    """Model descriptor is missing or malformed."""
