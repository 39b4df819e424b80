"""Model descriptors and the model catalog (``models.json``).

The catalog is a JSON list of model descriptors sitting next to the weights
files::

    [
        {"name": "htdemucs", "sample_rate": 44100, "channels": 2,
         "sources": ["drums", "bass", "other", "vocals"]},
        {"name": "htdemucs_6s", "sample_rate": 44100, "channels": 2,
         "sources": ["drums", "bass", "other", "vocals", "guitar", "piano"],
         "file": "htdemucs_6s.pt"}
    ]

``file`` defaults to ``<name>.pt``.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .constants import MODEL_CATALOG_FILENAME, PREFERRED_MODELS
from .errors import ConfigError
from ..processing.policy import FilterPolicy, validate_sources


@dataclass(frozen=True)
class SeparationConfig:
    """Describes what a separation model consumes and produces.

    Attributes:
        name: Model identifier (e.g. "htdemucs")
        sample_rate: Rate the model runs at
        channel_count: Channels the model expects
        sources: Ordered source names, one per model output
        weights_file: Weights file name relative to the catalog directory
    """

    name: str
    sample_rate: int
    channel_count: int
    sources: Tuple[str, ...]
    weights_file: Optional[str] = None
    policies: Dict[str, FilterPolicy] = field(init=False, compare=False, repr=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Model descriptor has no name", stage="config")
        if self.sample_rate <= 0:
            raise ConfigError(
                f"Model '{self.name}' has invalid sample_rate {self.sample_rate}",
                stage="config",
            )
        if self.channel_count <= 0:
            raise ConfigError(
                f"Model '{self.name}' has invalid channel count {self.channel_count}",
                stage="config",
            )
        sources = tuple(self.sources)
        try:
            policies = validate_sources(sources)
        except ValueError as e:
            raise ConfigError(f"Model '{self.name}': {e}", stage="config") from e
        # frozen dataclass
        object.__setattr__(self, "sources", sources)
        object.__setattr__(self, "policies", policies)

    @property
    def source_count(self) -> int:
        return len(self.sources)

    @property
    def weights_name(self) -> str:
        return self.weights_file or f"{self.name}.pt"

    def source_index(self, name: str) -> Optional[int]:
        """Position of a source in the model output, or None."""
        try:
            return self.sources.index(name)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: dict) -> "SeparationConfig":
        if not isinstance(data, dict):
            raise ConfigError(
                f"Model descriptor must be an object, got {type(data).__name__}",
                stage="config",
            )
        missing = [k for k in ("name", "sample_rate", "channels", "sources") if k not in data]
        if missing:
            raise ConfigError(
                f"Model descriptor missing fields: {', '.join(missing)}",
                stage="config",
            )
        sources = data["sources"]
        if not isinstance(sources, list):
            raise ConfigError("'sources' must be a list of names", stage="config")
        try:
            return cls(
                name=str(data["name"]),
                sample_rate=int(data["sample_rate"]),
                channel_count=int(data["channels"]),
                sources=tuple(sources),
                weights_file=data.get("file"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Malformed model descriptor: {e}", stage="config") from e

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "sample_rate": self.sample_rate,
            "channels": self.channel_count,
            "sources": list(self.sources),
        }
        if self.weights_file:
            data["file"] = self.weights_file
        return data


def load_model_catalog(path: Union[str, Path]) -> List[SeparationConfig]:
    """
    Load model descriptors from a catalog file.

    Args:
        path: Path to ``models.json``

    Returns:
        List of SeparationConfig in catalog order

    Raises:
        ConfigError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError("Model catalog not found", path=path, stage="config")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read model catalog: {e}", path=path, stage="config") from e

    if isinstance(data, dict) and "models" in data:
        data = data["models"]
    if not isinstance(data, list):
        raise ConfigError("Model catalog must be a list", path=path, stage="config")

    return [SeparationConfig.from_dict(entry) for entry in data]


def find_model(catalog: Sequence[SeparationConfig], name: str) -> Optional[SeparationConfig]:
    """Find a model descriptor by name."""
    for config in catalog:
        if config.name == name:
            return config
    return None


def resolve_model(
    models_dir: Union[str, Path],
    preferred: Sequence[str] = PREFERRED_MODELS,
) -> Tuple[SeparationConfig, Path]:
    """
    Pick the first preferred model whose weights file is present.

    Args:
        models_dir: Directory holding ``models.json`` and weights files
        preferred: Model names in order of preference

    Returns:
        Tuple of (SeparationConfig, weights path)

    Raises:
        ConfigError: If the catalog is unusable or no preferred model is installed
    """
    models_dir = Path(models_dir)
    catalog = load_model_catalog(models_dir / MODEL_CATALOG_FILENAME)

    for name in preferred:
        config = find_model(catalog, name)
        if config is None:
            continue
        weights = models_dir / config.weights_name
        if weights.exists():
            return config, weights

    raise ConfigError(
        f"None of the models {', '.join(preferred)} is installed",
        path=models_dir,
        stage="config",
    )
