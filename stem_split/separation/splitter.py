"""Track splitting pipelines.

decode -> resample -> conform channels -> normalize -> model -> denormalize
-> per-source shaping -> click repair -> WAV
"""

import logging
import time
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from ..core.buffer import PcmBuffer
from ..core.constants import INSTRUMENTAL_FILENAME, VOCAL_FILENAME
from ..core.errors import StemSplitError
from ..input.decoder import conform_channels, decode_file, resample
from ..output.wav import write_wav
from ..processing.filters import DEFAULT_SETTINGS, FilterSettings
from ..processing.policy import finish_stem
from .model import ModelHandle, run_inference

logger = logging.getLogger(__name__)

VOCAL_SOURCE = "vocals"


@dataclass
class StemSet:
    """Separated stems of one track and where they were written."""

    stems: Dict[str, PcmBuffer] = field(default_factory=dict)
    paths: Dict[str, Path] = field(default_factory=dict)
    model_name: str = ""
    separation_time: float = 0.0

    def __getitem__(self, name: str) -> PcmBuffer:
        return self.stems[name]

    def __contains__(self, name: str) -> bool:
        return name in self.stems

    def __len__(self) -> int:
        return len(self.stems)

    @property
    def names(self) -> List[str]:
        return list(self.stems.keys())

    @property
    def output_paths(self) -> List[Path]:
        return list(self.paths.values())


def prepare_track(handle: ModelHandle, input_path: Union[str, Path]) -> PcmBuffer:
    """Decode a file and bring it to the model's rate and channel layout."""
    config = handle.config
    track = decode_file(input_path)
    track = resample(track, config.sample_rate)
    return conform_channels(track, config.channel_count)


def separate(
    handle: ModelHandle,
    track: PcmBuffer,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> Dict[str, PcmBuffer]:
    """
    Separate a prepared track and post-process every stem.

    Args:
        handle: Loaded model
        track: Audio at the model's rate and channel count
        settings: Filter settings

    Returns:
        Source name -> processed stem, in model source order
    """
    raw = run_inference(handle, track)
    return {
        name: track.with_samples(finish_stem(audio, name, track.sample_rate, settings))
        for name, audio in raw.items()
    }


def split_track(
    handle: ModelHandle,
    input_path: Union[str, Path],
    output_dir: Union[str, Path],
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> StemSet:
    """
    Split a file into one ``<source>.wav`` per model source.

    Args:
        handle: Loaded model
        input_path: Audio file to split
        output_dir: Directory receiving the stems
        settings: Filter settings

    Returns:
        StemSet with processed stems and written paths
    """
    start_time = time.time()
    output_dir = Path(output_dir)

    logger.info("Splitting %s with %s", input_path, handle.config.name)
    try:
        track = prepare_track(handle, input_path)
        stems = separate(handle, track, settings)
    except StemSplitError as e:
        raise e.with_path(input_path)

    paths = {}
    for name, stem in stems.items():
        paths[name] = write_wav(stem, output_dir / f"{name}.wav")

    return StemSet(
        stems=stems,
        paths=paths,
        model_name=handle.config.name,
        separation_time=time.time() - start_time,
    )


def split_vocal_instrumental(
    handle: ModelHandle,
    input_path: Union[str, Path],
    output_dir: Union[str, Path],
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> StemSet:
    """
    Split a file into ``vocal.wav`` and ``instrumental.wav``.

    The instrumental is the sum of every non-vocal source before
    post-processing; it is then shaped like "other", while the vocal is
    shaped like "vocals".

    Returns:
        StemSet keyed "vocal" and "instrumental"
    """
    start_time = time.time()
    output_dir = Path(output_dir)
    config = handle.config

    logger.info("Splitting vocals/instrumental of %s with %s", input_path, config.name)
    try:
        track = prepare_track(handle, input_path)
        raw = run_inference(handle, track)
    except StemSplitError as e:
        raise e.with_path(input_path)

    vocal_name = VOCAL_SOURCE
    if VOCAL_SOURCE not in raw:
        vocal_name = config.sources[0]
        warnings.warn(
            f"Model '{config.name}' has no '{VOCAL_SOURCE}' source, using '{vocal_name}' as vocal"
        )

    instrumental = np.zeros((track.channel_count, track.length), dtype=np.float32)
    for name, audio in raw.items():
        if name != VOCAL_SOURCE:
            instrumental += audio

    sr = track.sample_rate
    stems = {
        "vocal": track.with_samples(finish_stem(raw[vocal_name], "vocals", sr, settings)),
        "instrumental": track.with_samples(finish_stem(instrumental, "other", sr, settings)),
    }
    paths = {
        "vocal": write_wav(stems["vocal"], output_dir / VOCAL_FILENAME),
        "instrumental": write_wav(stems["instrumental"], output_dir / INSTRUMENTAL_FILENAME),
    }

    return StemSet(
        stems=stems,
        paths=paths,
        model_name=config.name,
        separation_time=time.time() - start_time,
    )
