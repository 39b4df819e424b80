"""Tests for decoding, resampling, channel conforming, WAV output and artwork."""

from types import SimpleNamespace

import numpy as np
import pytest
import soundfile as sf

from stem_split.core import DecodeError, IoError, PcmBuffer, ResampleError
from stem_split.input import conform_channels, decode_file, extract_cover_image, resample
from stem_split.input import metadata
from stem_split.output import write_wav


@pytest.fixture
def stereo_wav(tmp_path):
    sr = 22050
    t = np.arange(sr // 2) / sr
    audio = np.stack([0.5 * np.sin(2 * np.pi * 440 * t), 0.25 * np.sin(2 * np.pi * 220 * t)])
    path = tmp_path / "tone.wav"
    sf.write(str(path), audio.T, sr, subtype="FLOAT")
    return path, audio, sr


class TestPcmBuffer:
    def test_mono_promoted_to_2d(self):
        buffer = PcmBuffer(np.zeros(100), 8000)
        assert buffer.samples.shape == (1, 100)
        assert buffer.samples.dtype == np.float32
        assert buffer.duration == pytest.approx(100 / 8000)

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            PcmBuffer(np.zeros((2, 10)), 0)

    def test_to_mono_averages(self):
        buffer = PcmBuffer(np.stack([np.ones(4), np.zeros(4)]), 8000)
        np.testing.assert_allclose(buffer.to_mono(), 0.5)


class TestDecode:
    def test_decode_wav(self, stereo_wav):
        path, audio, sr = stereo_wav
        buffer = decode_file(path)
        assert buffer.sample_rate == sr
        assert buffer.channel_count == 2
        assert buffer.length == audio.shape[1]
        np.testing.assert_allclose(buffer.samples, audio, atol=1e-6)

    def test_decode_accepts_str_path(self, stereo_wav):
        path, _, sr = stereo_wav
        assert decode_file(str(path)).sample_rate == sr

    def test_missing_file(self, tmp_path):
        with pytest.raises(DecodeError) as exc_info:
            decode_file(tmp_path / "nope.wav")
        assert exc_info.value.stage == "decode"
        assert exc_info.value.path == tmp_path / "nope.wav"

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "garbage.wav"
        path.write_bytes(b"RIFF\x00\x00not really audio at all" * 4)
        with pytest.raises(DecodeError):
            decode_file(path)

    def test_empty_audio(self, tmp_path):
        path = tmp_path / "empty.wav"
        sf.write(str(path), np.zeros((0, 2), dtype=np.float32), 44100)
        with pytest.raises(DecodeError, match="no samples"):
            decode_file(path)


class TestResample:
    def test_same_rate_is_identity(self):
        buffer = PcmBuffer(np.random.default_rng(0).normal(size=(2, 1000)), 44100)
        assert resample(buffer, 44100) is buffer

    @pytest.mark.parametrize("source_rate,target_rate", [(22050, 44100), (48000, 44100), (44100, 16000)])
    def test_length_follows_duration(self, source_rate, target_rate):
        buffer = PcmBuffer(np.zeros((2, source_rate)), source_rate)
        out = resample(buffer, target_rate)
        assert out.sample_rate == target_rate
        assert out.channel_count == 2
        assert out.length == target_rate

    def test_tone_survives(self):
        sr = 22050
        t = np.arange(sr) / sr
        buffer = PcmBuffer(0.5 * np.sin(2 * np.pi * 440 * t), sr)
        out = resample(buffer, 44100)
        assert float(np.max(np.abs(out.samples))) == pytest.approx(0.5, abs=0.02)

    @pytest.mark.parametrize("rate", [0, -44100, None])
    def test_invalid_target_rate(self, rate):
        buffer = PcmBuffer(np.zeros((1, 100)), 44100)
        with pytest.raises(ResampleError):
            resample(buffer, rate)


class TestConformChannels:
    def test_mono_duplicated(self):
        buffer = PcmBuffer(np.arange(5, dtype=np.float32), 8000)
        out = conform_channels(buffer, 2)
        assert out.channel_count == 2
        np.testing.assert_array_equal(out.samples[0], out.samples[1])

    def test_extra_channels_dropped(self):
        buffer = PcmBuffer(np.arange(30, dtype=np.float32).reshape(3, 10), 8000)
        out = conform_channels(buffer, 2)
        np.testing.assert_array_equal(out.samples, buffer.samples[:2])

    def test_matching_layout_untouched(self):
        buffer = PcmBuffer(np.zeros((2, 10)), 8000)
        assert conform_channels(buffer, 2) is buffer


class TestWriteWav:
    def test_float_wav_round_trip(self, tmp_path):
        samples = np.stack([np.linspace(-1.5, 1.5, 100), np.linspace(1.0, -1.0, 100)])
        path = write_wav(PcmBuffer(samples, 44100), tmp_path / "nested" / "stem.wav")
        data, sr = sf.read(str(path), always_2d=True)
        assert sr == 44100
        # 32-bit float keeps out-of-range values
        np.testing.assert_allclose(data.T, samples, atol=1e-6)
        assert sf.info(str(path)).subtype == "FLOAT"

    def test_unwritable_destination(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        with pytest.raises(IoError) as exc_info:
            write_wav(PcmBuffer(np.zeros((2, 10)), 44100), blocker / "stem.wav")
        assert isinstance(exc_info.value, OSError)
        assert exc_info.value.stage == "write"


class TestCoverImage:
    def test_plain_wav_has_no_cover(self, stereo_wav, tmp_path):
        path, _, _ = stereo_wav
        assert extract_cover_image(path, tmp_path / "art") is None
        assert not (tmp_path / "art" / "cover.jpg").exists()

    def test_unrecognized_file_has_no_cover(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        assert extract_cover_image(path, tmp_path) is None

    def test_id3_jpeg_written(self, tmp_path, monkeypatch):
        jpeg = b"\xff\xd8\xff\xe0fake-jpeg"
        frames = [
            SimpleNamespace(mime="image/png", data=b"png"),
            SimpleNamespace(mime="image/jpeg", data=jpeg),
        ]
        tags = SimpleNamespace(getall=lambda key: frames if key == "APIC" else [])
        monkeypatch.setattr(metadata.mutagen, "File", lambda path: SimpleNamespace(tags=tags))

        cover = extract_cover_image(tmp_path / "song.mp3", tmp_path / "art")
        assert cover == tmp_path / "art" / "cover.jpg"
        assert cover.read_bytes() == jpeg

    def test_flac_png_only_is_skipped(self, tmp_path, monkeypatch):
        audio = SimpleNamespace(tags=None, pictures=[SimpleNamespace(mime="image/png", data=b"png")])
        monkeypatch.setattr(metadata.mutagen, "File", lambda path: audio)
        assert extract_cover_image(tmp_path / "song.flac", tmp_path) is None
