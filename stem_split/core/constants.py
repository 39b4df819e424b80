"""Global constants for Stem Split."""

# Audio defaults
DEFAULT_SAMPLE_RATE = 44100

# Normalization floor for the standard deviation
STD_FLOOR = 1e-8

# Tempo defaults
DEFAULT_TEMPO = 120.0
MIN_TEMPO = 60.0
MAX_TEMPO = 200.0

# Key estimator vocabulary
DEFAULT_KEY = "C major"
KEY_LABELS = [
    "C major",
    "D major",
    "E major",
    "F major",
    "G major",
    "A major",
    "B major",
]

# Output names for the two-way split
VOCAL_FILENAME = "vocal.wav"
INSTRUMENTAL_FILENAME = "instrumental.wav"

# Preferred models, best first
PREFERRED_MODELS = ("htdemucs_6s", "htdemucs")
MODEL_CATALOG_FILENAME = "models.json"
