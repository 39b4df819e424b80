"""Embedded artwork extraction."""

from pathlib import Path
from typing import Optional, Union

import mutagen

from ..core.errors import DecodeError, IoError

JPEG_MIME = "image/jpeg"
COVER_FILENAME = "cover.jpg"


def _find_jpeg(audio) -> Optional[bytes]:
    tags = getattr(audio, "tags", None)

    # ID3 (mp3, wav with id3 chunk)
    if tags is not None and hasattr(tags, "getall"):
        for frame in tags.getall("APIC"):
            if frame.mime.lower() in (JPEG_MIME, "image/jpg", "jpg"):
                return frame.data
        return None

    # FLAC / Ogg pictures
    for picture in getattr(audio, "pictures", None) or []:
        if picture.mime.lower() == JPEG_MIME:
            return picture.data

    # MP4 cover atoms
    if tags is not None and "covr" in tags:
        from mutagen.mp4 import MP4Cover
        for cover in tags["covr"]:
            if getattr(cover, "imageformat", None) == MP4Cover.FORMAT_JPEG:
                return bytes(cover)

    return None


def extract_cover_image(
    path: Union[str, Path],
    output_dir: Union[str, Path],
) -> Optional[Path]:
    """
    Write the first embedded JPEG picture to ``output_dir/cover.jpg``.

    Args:
        path: Audio file carrying tags
        output_dir: Directory to write the cover into

    Returns:
        Path to the written cover, or None if the file has no JPEG artwork
    """
    path = Path(path)
    try:
        audio = mutagen.File(str(path))
    except mutagen.MutagenError as e:
        raise DecodeError(f"Cannot read tags: {e}", path=path, stage="metadata") from e

    if audio is None:
        return None

    data = _find_jpeg(audio)
    if data is None:
        return None

    cover_path = Path(output_dir) / COVER_FILENAME
    try:
        cover_path.parent.mkdir(parents=True, exist_ok=True)
        cover_path.write_bytes(data)
    except OSError as e:
        raise IoError(f"Failed to write cover image: {e}", path=cover_path, stage="metadata") from e

    return cover_path
