"""Async entry point for separation requests.

One service owns one model loader. Every request waits for the loader's lock,
then runs the blocking pipeline in a worker thread while holding it, so a
single inference is in flight at any time. Callers may wrap requests in
``asyncio.wait_for``; a request that times out stops waiting, but its pipeline
still runs to completion or fails, holding the lock, before the next one
starts.
"""

import os
from pathlib import Path
from typing import Optional, Sequence, Union

from ..core.config import resolve_model
from ..core.constants import PREFERRED_MODELS
from ..processing.filters import DEFAULT_SETTINGS, FilterSettings
from .loader import LazyModelLoader
from .splitter import StemSet, split_track, split_vocal_instrumental

MODELS_DIR_ENV = "STEM_SPLIT_MODELS_DIR"


def limit_native_threads(threads: int = 1) -> None:
    """
    Cap OpenMP/MKL thread pools so competing runtimes don't clash.

    Only libraries that start their pools after this call honour the limit.
    Importing ``stem_split`` already loads numpy and scipy, whose BLAS pools
    are sized at import, so from the CLI this effectively limits torch alone.
    Export the variables before starting Python to cap every pool.
    """
    for var in ("OMP_NUM_THREADS", "MKL_NUM_THREADS", "NUMEXPR_NUM_THREADS"):
        os.environ[var] = str(threads)


def default_models_dir() -> Optional[Path]:
    value = os.environ.get(MODELS_DIR_ENV)
    return Path(value) if value else None


class SeparationService:
    """
    Serialized stem separation over a shared, lazily loaded model.

    Usage:
        service = SeparationService.from_models_dir("models/")
        stems = await service.split_stems("song.mp3", "out/")
    """

    def __init__(
        self,
        loader: LazyModelLoader,
        settings: FilterSettings = DEFAULT_SETTINGS,
    ):
        self.loader = loader
        self.settings = settings

    @classmethod
    def from_models_dir(
        cls,
        models_dir: Union[str, Path],
        device: str = "auto",
        preferred: Sequence[str] = PREFERRED_MODELS,
    ) -> "SeparationService":
        """Build a service for the best installed model in ``models_dir``."""
        config, weights_path = resolve_model(models_dir, preferred)
        return cls(LazyModelLoader(config, weights_path, device=device))

    @property
    def config(self):
        return self.loader.config

    async def split_stems(
        self,
        input_path: Union[str, Path],
        output_dir: Union[str, Path],
    ) -> StemSet:
        """Split a file into one WAV per model source."""
        return await self.loader.run(
            split_track, input_path, output_dir, self.settings
        )

    async def split_vocal_instrumental(
        self,
        input_path: Union[str, Path],
        output_dir: Union[str, Path],
    ) -> StemSet:
        """Split a file into vocal.wav and instrumental.wav."""
        return await self.loader.run(
            split_vocal_instrumental, input_path, output_dir, self.settings
        )
