import json
import logging
import os
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from errors import SettingsError
from models import MICRO_KEYS, NUTRIENT_KEYS, PRIMARY_KEYS

logger = logging.getLogger(__name__)

# --- KONFIGURATION ---
DEFAULT_DB_PATH = os.path.join('data', 'db.json')
SETTINGS_ENV = 'HYDRO_SETTINGS'
DB_PATH_ENV = 'HYDRO_DB_PATH'

# Äquivalentgewichte (g/eq) der Ionen, in denen das Element gelöst vorliegt:
# N als NO3-, P als H2PO4-, S als SO4(2-), Mo als MoO4(2-). Bor ist kaum dissoziiert.
EQUIVALENT_WEIGHTS = {
    "n": 14.007, "p": 30.974, "k": 39.098, "ca": 20.039, "mg": 12.153, "s": 16.033,
    "fe": 27.923, "mn": 27.469, "zn": 32.690, "cu": 31.773, "mo": 47.975,
}

# EC (mS/cm) ~ (Kationen + Anionen in meq/L) / 2 / 10  ->  Gewicht je mg/L
DEFAULT_EC_WEIGHTS = {k: 1.0 / (EQUIVALENT_WEIGHTS[k] * 20.0) if k in EQUIVALENT_WEIGHTS else 0.0
                      for k in NUTRIENT_KEYS}

DEFAULT_EC_RANGE = (0.8, 2.5)
EC_RANGES = {
    "keimling": (0.4, 1.0),
    "seedling": (0.4, 1.0),
    "wachstum": (0.8, 1.8),
    "vegetative": (0.8, 1.8),
    "blüte": (1.2, 2.4),
    "bloom": (1.2, 2.4),
}
RATIO_RANGES = {
    "n:k": (0.5, 1.5),
    "ca:mg": (2.0, 5.0),
}

# Solver: Hauptnährstoffe zählen mehr als Sekundär- und Spurennährstoffe
DEFAULT_WEIGHTS = {k: 1.0 if k in PRIMARY_KEYS else 0.1 if k in MICRO_KEYS else 0.35 for k in NUTRIENT_KEYS}
DEFAULT_RELATIVE_TOLERANCES = {k: 0.15 if k in PRIMARY_KEYS else 0.5 for k in NUTRIENT_KEYS}
DEFAULT_ABSOLUTE_TOLERANCES = {k: 0.05 if k in MICRO_KEYS else 2.0 for k in NUTRIENT_KEYS}


class CalculatorConfig(BaseModel):
    ec_weights: Dict[str, float] = dict(DEFAULT_EC_WEIGHTS)
    default_ec_range: Tuple[float, float] = DEFAULT_EC_RANGE
    ec_ranges: Dict[str, Tuple[float, float]] = dict(EC_RANGES)
    ratio_ranges: Dict[str, Tuple[float, float]] = dict(RATIO_RANGES)
    missing_product: Literal['skip', 'warn', 'error'] = 'skip'

    def ec_range(self, phase: Optional[str] = None) -> Tuple[float, float]:
        if phase:
            return self.ec_ranges.get(phase.strip().lower(), self.default_ec_range)
        return self.default_ec_range


class SolverConfig(BaseModel):
    max_products: int = Field(4, ge=1)
    dose_step: float = Field(0.1, gt=0)  # Rundung der Dosis (ml/L bzw. g/L)
    max_dose: Optional[float] = Field(None, gt=0)
    weights: Dict[str, float] = dict(DEFAULT_WEIGHTS)
    relative_tolerances: Dict[str, float] = dict(DEFAULT_RELATIVE_TOLERANCES)
    absolute_tolerances: Dict[str, float] = dict(DEFAULT_ABSOLUTE_TOLERANCES)
    min_gain: float = Field(1e-9, ge=0)


class Settings(BaseModel):
    db_path: str = DEFAULT_DB_PATH
    calculator: CalculatorConfig = CalculatorConfig()
    solver: SolverConfig = SolverConfig()


def load_settings(path: Optional[str] = None) -> Settings:
    """Lädt Einstellungen aus JSON (Argument, sonst $HYDRO_SETTINGS), sonst Standardwerte.

    $HYDRO_DB_PATH überschreibt immer den Datenbankpfad.
    """
    path = path or os.environ.get(SETTINGS_ENV)
    data = {}
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SettingsError(f"Einstellungen nicht lesbar: {path}: {e}") from e
        if not isinstance(data, dict):
            raise SettingsError(f"Einstellungen müssen ein JSON-Objekt sein: {path}")
        logger.debug("Einstellungen geladen aus %s", path)

    if os.environ.get(DB_PATH_ENV):
        data = {**data, 'db_path': os.environ[DB_PATH_ENV]}

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Ungültige Einstellungen: {e}") from e
