"""WAV encoding for separated stems."""

import logging
from pathlib import Path
from typing import Union

import soundfile as sf

from ..core.buffer import PcmBuffer
from ..core.errors import IoError

logger = logging.getLogger(__name__)

# 32-bit float keeps the full range of the model output; nothing clips
# before a later lossy encode.
DEFAULT_SUBTYPE = "FLOAT"


def write_wav(
    buffer: PcmBuffer,
    path: Union[str, Path],
    subtype: str = DEFAULT_SUBTYPE,
) -> Path:
    """
    Write a buffer as a WAV file.

    Args:
        buffer: Audio to write
        path: Destination file
        subtype: soundfile subtype (FLOAT, PCM_24, PCM_16...)

    Returns:
        The path written

    Raises:
        IoError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # soundfile expects [frames, channels]
        sf.write(
            str(path),
            buffer.samples.T,
            buffer.sample_rate,
            subtype=subtype,
            format="WAV",
        )
    except (OSError, RuntimeError, TypeError, ValueError) as e:
        raise IoError(f"Failed to write WAV: {e}", path=path, stage="write") from e

    logger.debug("Wrote %s (%d ch, %d Hz)", path.name, buffer.channel_count, buffer.sample_rate)
    return path
