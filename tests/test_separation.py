"""Tests for the separation pipeline.

The neural model is replaced by deterministic fakes, so these tests run
without weights or a GPU:
- Whole-buffer normalization
- Inference shape checks and error wrapping
- Lazy loading, retry after failure, and serialized access
- Full and vocal/instrumental splits written to disk
"""

import asyncio
import os
import threading
import time

import numpy as np
import pytest
import soundfile as sf

from stem_split.core import InferenceError, PcmBuffer, SeparationConfig
from stem_split.processing import finish_stem
from stem_split.separation import (
    LazyModelLoader,
    LoaderState,
    ModelHandle,
    SeparationModel,
    SeparationService,
    compute_stats,
    denormalize,
    limit_native_threads,
    normalize,
    prepare_track,
    run_inference,
    split_track,
    split_vocal_instrumental,
)

SOURCES_4 = ("drums", "bass", "other", "vocals")


class EqualSplitModel(SeparationModel):
    """Gives every source an equal share of the mix and records calls."""

    def __init__(self, source_count, delay=0.0):
        self.source_count = source_count
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def apply(self, mix):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            self.calls += 1
            share = mix / self.source_count
            return np.repeat(share[:, np.newaxis], self.source_count, axis=1)
        finally:
            with self._guard:
                self.active -= 1


class IdentityModel(SeparationModel):
    """Returns the normalized mix unchanged for every source."""

    def __init__(self, source_count):
        self.source_count = source_count

    def apply(self, mix):
        return np.repeat(mix[:, np.newaxis], self.source_count, axis=1)


class WrongShapeModel(SeparationModel):
    def apply(self, mix):
        return mix


class CrashingModel(SeparationModel):
    def apply(self, mix):
        raise RuntimeError("CUDA out of memory")


@pytest.fixture
def config():
    return SeparationConfig(name="htdemucs", sample_rate=44100, channel_count=2, sources=SOURCES_4)


@pytest.fixture
def stereo_track():
    sr = 44100
    t = np.arange(sr) / sr
    left = 0.3 * np.sin(2 * np.pi * 220 * t)
    right = 0.2 * np.sin(2 * np.pi * 330 * t) + 0.05
    return PcmBuffer(np.stack([left, right]), sr)


@pytest.fixture
def wav_file(tmp_path, stereo_track):
    path = tmp_path / "mix.wav"
    sf.write(str(path), stereo_track.samples.T, stereo_track.sample_rate, subtype="FLOAT")
    return path


def counting_load_fn(model):
    calls = []

    def load_fn(config, weights_path, device):
        calls.append((config.name, weights_path, device))
        return model

    return load_fn, calls


class TestNormalization:
    def test_round_trip(self):
        x = np.random.default_rng(0).normal(0.1, 0.4, (2, 5000)).astype(np.float32)
        mean, std = compute_stats(x)
        np.testing.assert_allclose(denormalize(normalize(x, mean, std), mean, std), x, atol=1e-5)

    def test_stats_cover_whole_buffer(self):
        x = np.stack([np.zeros(1000), np.ones(1000)])
        mean, std = compute_stats(x)
        assert mean == pytest.approx(0.5)
        # Per-channel std would be 0; whole-buffer std is ~0.5
        assert std == pytest.approx(0.5, abs=1e-3)

    def test_normalized_has_zero_mean_unit_std(self):
        x = np.random.default_rng(1).normal(0.3, 2.0, (2, 10000))
        mean, std = compute_stats(x)
        y = normalize(x, mean, std)
        assert float(y.mean()) == pytest.approx(0.0, abs=1e-5)
        assert float(y.std(ddof=1)) == pytest.approx(1.0, abs=1e-4)

    def test_silence_uses_std_floor(self):
        x = np.zeros((2, 100))
        mean, std = compute_stats(x)
        assert std == 0.0
        y = normalize(x, mean, std)
        assert np.all(np.isfinite(y))
        np.testing.assert_array_equal(denormalize(y, mean, std), x)


class TestRunInference:
    def test_identity_model_returns_input(self, config, stereo_track):
        handle = ModelHandle(IdentityModel(4), "cpu", config)
        stems = run_inference(handle, stereo_track)
        assert list(stems) == list(SOURCES_4)
        for audio in stems.values():
            assert audio.shape == (2, stereo_track.length)
            np.testing.assert_allclose(audio, stereo_track.samples, atol=1e-5)

    def test_wrong_output_shape(self, config, stereo_track):
        handle = ModelHandle(WrongShapeModel(), "cpu", config)
        with pytest.raises(InferenceError, match="shape"):
            run_inference(handle, stereo_track)

    def test_model_failure_is_wrapped(self, config, stereo_track):
        handle = ModelHandle(CrashingModel(), "cpu", config)
        with pytest.raises(InferenceError) as exc_info:
            run_inference(handle, stereo_track)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.stage == "inference"

    def test_channel_mismatch(self, config):
        mono = PcmBuffer(np.zeros((1, 1000)), 44100)
        handle = ModelHandle(IdentityModel(4), "cpu", config)
        with pytest.raises(InferenceError, match="channels"):
            run_inference(handle, mono)

    def test_non_finite_output_rejected(self, config, stereo_track):
        class NanModel(SeparationModel):
            def apply(self, mix):
                out = np.repeat(mix[:, np.newaxis], 4, axis=1)
                out[0, 0, 0, 0] = np.nan
                return out

        with pytest.raises(InferenceError, match="non-finite"):
            run_inference(ModelHandle(NanModel(), "cpu", config), stereo_track)


class TestLazyModelLoader:
    def test_starts_unloaded(self, config):
        loader = LazyModelLoader(config, device="cpu", load_fn=counting_load_fn(IdentityModel(4))[0])
        assert loader.state == LoaderState.UNLOADED
        assert not loader.is_loaded
        assert loader.load_count == 0

    def test_loads_once(self, config):
        load_fn, calls = counting_load_fn(IdentityModel(4))
        loader = LazyModelLoader(config, device="cpu", load_fn=load_fn)
        first = loader.get_or_load()
        second = loader.get_or_load()
        assert first is second
        assert len(calls) == 1
        assert calls[0] == ("htdemucs", None, "cpu")
        assert loader.state == LoaderState.LOADED

    def test_failed_load_can_retry(self, config):
        attempts = []

        def flaky_load(config, weights_path, device):
            attempts.append(device)
            if len(attempts) == 1:
                raise RuntimeError("weights corrupt")
            return IdentityModel(4)

        loader = LazyModelLoader(config, device="cpu", load_fn=flaky_load)
        with pytest.raises(InferenceError) as exc_info:
            loader.get_or_load()
        assert exc_info.value.stage == "load"
        assert loader.state == LoaderState.UNLOADED

        handle = loader.get_or_load()
        assert isinstance(handle.model, IdentityModel)
        assert loader.load_count == 1

    def test_reload_replaces_handle(self, config):
        load_fn, calls = counting_load_fn(IdentityModel(4))
        loader = LazyModelLoader(config, device="cpu", load_fn=load_fn)
        first = loader.get_or_load()
        second = loader.reload()
        assert first is not second
        assert len(calls) == 2

    def test_unload(self, config):
        loader = LazyModelLoader(config, device="cpu", load_fn=counting_load_fn(IdentityModel(4))[0])
        loader.get_or_load()
        loader.unload()
        assert loader.state == LoaderState.UNLOADED

    def test_concurrent_requests_load_once_and_run_one_at_a_time(self, config, stereo_track):
        model = EqualSplitModel(4, delay=0.02)
        load_fn, calls = counting_load_fn(model)
        loader = LazyModelLoader(config, device="cpu", load_fn=load_fn)

        async def request():
            async with loader.session() as handle:
                return await asyncio.to_thread(run_inference, handle, stereo_track)

        async def main():
            return await asyncio.gather(*(request() for _ in range(6)))

        results = asyncio.run(main())

        assert len(results) == 6
        assert len(calls) == 1
        assert loader.load_count == 1
        assert model.calls == 6
        assert model.max_active == 1

    def test_session_after_failed_load(self, config, stereo_track):
        attempts = []

        def flaky_load(config, weights_path, device):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("device lost")
            return IdentityModel(4)

        loader = LazyModelLoader(config, device="cpu", load_fn=flaky_load)

        async def request():
            async with loader.session() as handle:
                return handle

        async def main():
            with pytest.raises(InferenceError):
                await request()
            return await request()

        handle = asyncio.run(main())
        assert isinstance(handle.model, IdentityModel)


class TestSplitPipelines:
    def test_prepare_track_conforms_mono(self, tmp_path, config):
        path = tmp_path / "mono.wav"
        sf.write(str(path), np.zeros(22050, dtype=np.float32), 22050)
        handle = ModelHandle(IdentityModel(4), "cpu", config)
        track = prepare_track(handle, path)
        assert track.sample_rate == 44100
        assert track.channel_count == 2
        assert track.length == 44100

    def test_split_track_writes_one_wav_per_source(self, tmp_path, config, wav_file, stereo_track):
        handle = ModelHandle(EqualSplitModel(4), "cpu", config)
        out_dir = tmp_path / "stems"
        result = split_track(handle, wav_file, out_dir)

        assert result.names == list(SOURCES_4)
        assert result.model_name == "htdemucs"
        for name in SOURCES_4:
            path = out_dir / f"{name}.wav"
            assert result.paths[name] == path
            data, sr = sf.read(str(path), always_2d=True)
            assert sr == 44100
            assert data.shape == (stereo_track.length, 2)
            assert np.all(np.isfinite(data))
            assert result[name].length == stereo_track.length

    def test_drums_stem_is_unfiltered_share(self, tmp_path, config, wav_file, stereo_track):
        handle = ModelHandle(EqualSplitModel(4), "cpu", config)
        result = split_track(handle, wav_file, tmp_path / "stems")
        # Drums pass through; the share of the mix survives denormalization
        mean, _ = compute_stats(stereo_track.samples)
        expected = (stereo_track.samples - mean) / 4 + mean
        np.testing.assert_allclose(result["drums"].samples, expected, atol=1e-4)

    def test_split_vocal_instrumental(self, tmp_path, config, wav_file, stereo_track):
        handle = ModelHandle(EqualSplitModel(4), "cpu", config)
        out_dir = tmp_path / "two_way"
        result = split_vocal_instrumental(handle, wav_file, out_dir)

        assert sorted(result.names) == ["instrumental", "vocal"]
        assert result.paths["vocal"] == out_dir / "vocal.wav"
        assert result.paths["instrumental"] == out_dir / "instrumental.wav"
        for path in result.output_paths:
            data, sr = sf.read(str(path), always_2d=True)
            assert data.shape == (stereo_track.length, 2)

    def test_instrumental_sums_non_vocal_sources(self, tmp_path, wav_file):
        # Only "drums" plus "vocals": instrumental before shaping is the drums share
        config = SeparationConfig("two", 44100, 2, ("drums", "vocals"))
        handle = ModelHandle(IdentityModel(2), "cpu", config)
        result = split_vocal_instrumental(handle, wav_file, tmp_path / "out")
        raw = run_inference(handle, prepare_track(handle, wav_file))
        expected = finish_stem(raw["drums"], "other", 44100)
        np.testing.assert_allclose(result["instrumental"].samples, expected, atol=1e-5)

    def test_missing_vocals_falls_back_to_first_source(self, tmp_path, wav_file):
        config = SeparationConfig("novocals", 44100, 2, ("drums", "bass"))
        handle = ModelHandle(EqualSplitModel(2), "cpu", config)
        with pytest.warns(UserWarning, match="vocals"):
            result = split_vocal_instrumental(handle, wav_file, tmp_path / "out")
        assert "vocal" in result

    def test_inference_failure_writes_nothing(self, tmp_path, config, wav_file):
        handle = ModelHandle(CrashingModel(), "cpu", config)
        out_dir = tmp_path / "stems"
        with pytest.raises(InferenceError):
            split_track(handle, wav_file, out_dir)
        assert not out_dir.exists() or not any(out_dir.iterdir())

    def test_inference_error_names_input_file(self, tmp_path, config, wav_file):
        handle = ModelHandle(CrashingModel(), "cpu", config)
        with pytest.raises(InferenceError) as exc_info:
            split_track(handle, wav_file, tmp_path / "stems")
        assert exc_info.value.path == wav_file
        assert exc_info.value.stage == "inference"
        assert str(wav_file) in str(exc_info.value)

    def test_two_way_inference_error_names_input_file(self, tmp_path, config, wav_file):
        handle = ModelHandle(WrongShapeModel(), "cpu", config)
        with pytest.raises(InferenceError) as exc_info:
            split_vocal_instrumental(handle, wav_file, tmp_path / "out")
        assert exc_info.value.path == wav_file


class TestSeparationService:
    def test_requests_are_serialized(self, tmp_path, config, wav_file):
        model = EqualSplitModel(4, delay=0.01)
        load_fn, calls = counting_load_fn(model)
        service = SeparationService(LazyModelLoader(config, device="cpu", load_fn=load_fn))

        async def main():
            return await asyncio.gather(
                service.split_stems(wav_file, tmp_path / "a"),
                service.split_stems(wav_file, tmp_path / "b"),
                service.split_vocal_instrumental(wav_file, tmp_path / "c"),
            )

        a, b, c = asyncio.run(main())
        assert len(calls) == 1
        assert model.calls == 3
        assert model.max_active == 1
        assert (tmp_path / "a" / "vocals.wav").exists()
        assert (tmp_path / "b" / "drums.wav").exists()
        assert (tmp_path / "c" / "instrumental.wav").exists()

    def test_timed_out_request_keeps_the_lock(self, tmp_path, config, wav_file):
        model = EqualSplitModel(4, delay=0.3)
        load_fn, calls = counting_load_fn(model)
        service = SeparationService(LazyModelLoader(config, device="cpu", load_fn=load_fn))

        async def main():
            first = asyncio.ensure_future(
                asyncio.wait_for(service.split_stems(wav_file, tmp_path / "a"), timeout=0.1)
            )
            await asyncio.sleep(0.02)
            second = asyncio.ensure_future(service.split_stems(wav_file, tmp_path / "b"))
            with pytest.raises(asyncio.TimeoutError):
                await first
            return await second

        result = asyncio.run(main())
        assert model.max_active == 1
        assert model.calls == 2
        assert len(calls) == 1
        assert result.paths["drums"] == tmp_path / "b" / "drums.wav"
        # The timed-out request still ran to completion
        assert (tmp_path / "a" / "vocals.wav").exists()

    def test_limit_native_threads(self, monkeypatch):
        for var in ("OMP_NUM_THREADS", "MKL_NUM_THREADS", "NUMEXPR_NUM_THREADS"):
            monkeypatch.delenv(var, raising=False)
        limit_native_threads(2)
        assert os.environ["OMP_NUM_THREADS"] == "2"
        assert os.environ["MKL_NUM_THREADS"] == "2"
        assert os.environ["NUMEXPR_NUM_THREADS"] == "2"

    def test_from_models_dir(self, tmp_path):
        import json

        (tmp_path / "models.json").write_text(json.dumps([
            {"name": "htdemucs", "sample_rate": 44100, "channels": 2, "sources": list(SOURCES_4)},
        ]))
        (tmp_path / "htdemucs.pt").write_bytes(b"weights")
        service = SeparationService.from_models_dir(tmp_path, device="cpu")
        assert service.config.name == "htdemucs"
        assert service.loader.weights_path == tmp_path / "htdemucs.pt"
        assert service.loader.state == LoaderState.UNLOADED
