"""Separation model adapter and compute device selection.

The neural model is an opaque capability: given a normalized mix of shape
``(1, channels, frames)`` it returns per-source audio of shape
``(1, sources, channels, frames)``. Anything honouring ``SeparationModel``
can stand in for Demucs, which keeps the numeric pipeline testable without
weights.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from ..core.buffer import PcmBuffer
from ..core.config import SeparationConfig
from ..core.errors import InferenceError
from .normalize import compute_stats, denormalize, normalize

logger = logging.getLogger(__name__)


class SeparationModel(ABC):
    """Abstract separation capability."""

    @abstractmethod
    def apply(self, mix: np.ndarray) -> np.ndarray:
        """
        Separate a normalized mix.

        Args:
            mix: Normalized audio, shape (1, channels, frames)

        Returns:
            Per-source audio, shape (1, sources, channels, frames)
        """
        pass


class DemucsModel(SeparationModel):
    """Demucs model (pretrained bag or TorchScript export) on a torch device."""

    def __init__(self, model: Any, device: str = "cpu", overlap: float = 0.25, scripted: bool = False):
        self.model = model
        self.device = device
        self.overlap = overlap
        self.scripted = scripted

    def apply(self, mix: np.ndarray) -> np.ndarray:
        import torch

        tensor = torch.from_numpy(np.ascontiguousarray(mix, dtype=np.float32))
        if self.device != "cpu":
            tensor = tensor.to(self.device)

        with torch.no_grad():
            if self.scripted:
                sources = self.model(tensor)
            else:
                from demucs.apply import apply_model
                sources = apply_model(
                    self.model,
                    tensor,
                    split=True,
                    overlap=self.overlap,
                    device=self.device,
                )

        return sources.cpu().numpy()


@dataclass(frozen=True)
class ModelHandle:
    """A loaded model bound to its device and descriptor."""
    model: SeparationModel
    device: str
    config: SeparationConfig


def _mps_usable(torch) -> bool:
    if not (hasattr(torch.backends, "mps") and torch.backends.mps.is_available()):
        return False
    try:
        test_tensor = torch.zeros(1, device="mps")
        del test_tensor
        return True
    except RuntimeError:
        return False


def select_device(requested: str = "auto") -> str:
    """
    Choose the compute device.

    Priority for "auto": Apple MPS, then CUDA, then CPU.
    """
    if requested != "auto":
        return requested

    import torch

    if _mps_usable(torch):
        return "mps"
    if torch.cuda.is_available():
        return "cuda"
    return "cpu"


def get_device_info(requested: str = "auto") -> Dict[str, str]:
    """Describe the device that ``select_device`` would pick."""
    import torch

    selected = select_device(requested)
    info = {
        "requested": requested,
        "selected": selected,
        "torch_version": torch.__version__,
    }
    if selected.startswith("cuda") and torch.cuda.is_available():
        info["cuda_device"] = torch.cuda.get_device_name(0)
        info["cuda_version"] = torch.version.cuda or "unknown"
    return info


def load_demucs(
    config: SeparationConfig,
    weights_path: Optional[Path],
    device: str,
) -> SeparationModel:
    """
    Load a Demucs model.

    A TorchScript export at ``weights_path`` is loaded directly; without one,
    the pretrained model named by ``config.name`` is fetched through Demucs.
    """
    import torch

    if weights_path is not None:
        weights_path = Path(weights_path)
        if not weights_path.exists():
            raise InferenceError("Model weights not found", path=weights_path, stage="load")
        logger.info("Loading TorchScript model %s on %s", weights_path.name, device)
        module = torch.jit.load(str(weights_path), map_location=device)
        module.eval()
        return DemucsModel(module, device=device, scripted=True)

    from demucs.pretrained import get_model

    logger.info("Loading pretrained Demucs model %s on %s", config.name, device)
    model = get_model(config.name)
    if list(model.sources) != list(config.sources):
        raise InferenceError(
            f"Model '{config.name}' produces {list(model.sources)}, "
            f"descriptor declares {list(config.sources)}",
            stage="load",
        )
    if device != "cpu":
        model.to(device)
    model.eval()
    return DemucsModel(model, device=device)


def run_inference(handle: ModelHandle, buffer: PcmBuffer) -> Dict[str, np.ndarray]:
    """
    Normalize, separate and denormalize one track.

    Args:
        handle: Loaded model
        buffer: Track already at the model's rate and channel count

    Returns:
        Source name -> audio of shape (channels, frames)

    Raises:
        InferenceError: On model failure or any shape mismatch; nothing is
            returned for a failed request
    """
    config = handle.config
    if buffer.channel_count != config.channel_count:
        raise InferenceError(
            f"Model expects {config.channel_count} channels, got {buffer.channel_count}",
            stage="inference",
        )
    if buffer.sample_rate != config.sample_rate:
        raise InferenceError(
            f"Model expects {config.sample_rate} Hz, got {buffer.sample_rate} Hz",
            stage="inference",
        )

    mean, std = compute_stats(buffer.samples)
    mix = normalize(buffer.samples, mean, std).reshape(1, buffer.channel_count, buffer.length)

    try:
        output = handle.model.apply(mix)
    except InferenceError:
        raise
    except Exception as e:
        raise InferenceError(f"Model inference failed: {e}", stage="inference") from e

    output = np.asarray(output)
    expected = (1, config.source_count, buffer.channel_count, buffer.length)
    if output.shape != expected:
        raise InferenceError(
            f"Model output shape {output.shape} does not match {expected}",
            stage="inference",
        )
    if not np.all(np.isfinite(output)):
        raise InferenceError("Model output contains non-finite values", stage="inference")

    output = denormalize(output, mean, std)
    return {name: output[0, i] for i, name in enumerate(config.sources)}
