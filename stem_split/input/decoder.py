"""Audio decoding and resampling."""

import logging
from pathlib import Path
from typing import Tuple, Union

import librosa
import numpy as np
import soundfile as sf

from ..core.buffer import PcmBuffer
from ..core.errors import DecodeError, ResampleError

logger = logging.getLogger(__name__)


def _read_soundfile(path: Path) -> Tuple[np.ndarray, int]:
    # soundfile returns [frames, channels]
    data, sr = sf.read(str(path), dtype="float32", always_2d=True)
    return data.T, sr


def _read_librosa(path: Path) -> Tuple[np.ndarray, int]:
    audio, sr = librosa.load(str(path), sr=None, mono=False)
    return np.atleast_2d(audio), sr


def decode_file(path: Union[str, Path]) -> PcmBuffer:
    """
    Decode an audio file into per-channel float samples.

    libsndfile formats are read with soundfile; anything it cannot open
    (m4a, mp4, webm, mp3 on older libsndfile) goes through librosa's
    audioread/ffmpeg backends.

    Args:
        path: Path to audio file

    Returns:
        PcmBuffer at the file's native rate and channel count

    Raises:
        DecodeError: If the file is missing, unsupported or corrupt
    """
    path = Path(path)

    if not path.is_file():
        raise DecodeError("Audio file not found", path=path, stage="decode")

    try:
        samples, sr = _read_soundfile(path)
    except (RuntimeError, TypeError, ValueError) as sf_error:
        logger.debug("soundfile cannot read %s (%s), trying librosa", path, sf_error)
        try:
            samples, sr = _read_librosa(path)
        except Exception as e:
            raise DecodeError(
                f"Unsupported or corrupt audio: {e}", path=path, stage="decode"
            ) from e

    if samples.size == 0:
        raise DecodeError("Audio file contains no samples", path=path, stage="decode")

    buffer = PcmBuffer(samples=samples, sample_rate=sr)
    logger.debug(
        "Decoded %s: %d channels, %d Hz, %d frames",
        path.name, buffer.channel_count, buffer.sample_rate, buffer.length,
    )
    return buffer


def resample(buffer: PcmBuffer, target_rate: int) -> PcmBuffer:
    """
    Resample a buffer to ``target_rate``.

    Args:
        buffer: Input audio
        target_rate: Desired sample rate in Hz

    Returns:
        The same buffer if already at ``target_rate``, else a new buffer whose
        length matches the resampled duration

    Raises:
        ResampleError: If ``target_rate`` is not a positive rate
    """
    if target_rate is None or int(target_rate) <= 0:
        raise ResampleError(f"Invalid target sample rate: {target_rate}", stage="resample")
    target_rate = int(target_rate)

    if buffer.sample_rate == target_rate:
        return buffer

    if buffer.length == 0:
        return PcmBuffer.silence(buffer.channel_count, 0, target_rate)

    try:
        samples = librosa.resample(
            buffer.samples,
            orig_sr=buffer.sample_rate,
            target_sr=target_rate,
            axis=-1,
        )
    except Exception as e:
        raise ResampleError(
            f"Resampling {buffer.sample_rate} Hz -> {target_rate} Hz failed: {e}",
            stage="resample",
        ) from e

    logger.debug("Resampled %d Hz -> %d Hz", buffer.sample_rate, target_rate)
    return PcmBuffer(samples=samples, sample_rate=target_rate)


def conform_channels(buffer: PcmBuffer, channel_count: int) -> PcmBuffer:
    """
    Match the channel layout a model expects.

    Mono is duplicated across channels; extra channels are dropped.
    """
    if buffer.channel_count == channel_count:
        return buffer
    if buffer.channel_count == 1:
        samples = np.repeat(buffer.samples, channel_count, axis=0)
    elif buffer.channel_count > channel_count:
        samples = buffer.samples[:channel_count]
    else:
        # Pad missing channels with a downmix
        mono = buffer.to_mono()[np.newaxis, :]
        extra = np.repeat(mono, channel_count - buffer.channel_count, axis=0)
        samples = np.concatenate([buffer.samples, extra], axis=0)
    return buffer.with_samples(samples)
