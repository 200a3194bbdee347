from enum import Enum
from typing import Dict, List, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Geschlossenes Nährstoff-Schema (elementar, mg/L)
NUTRIENT_KEYS = ['n', 'p', 'k', 'ca', 'mg', 's', 'fe', 'mn', 'zn', 'cu', 'b', 'mo']
NUTRIENT_LABELS = ['N', 'P', 'K', 'Ca', 'Mg', 'S', 'Fe', 'Mn', 'Zn', 'Cu', 'B', 'Mo']
PRIMARY_KEYS = ('n', 'p', 'k')
MICRO_KEYS = ('fe', 'mn', 'zn', 'cu', 'b', 'mo')

# Umrechnungsfaktoren (Oxid -> Elementar)
OXIDE_CONVERSION = {
    "p2o5": ("p", 0.4364),
    "k2o": ("k", 0.8302),
    "mgo": ("mg", 0.6032),
    "cao": ("ca", 0.7147),
    "so3": ("s", 0.4005),
}

# Annahme: 1 % = 10 mg/ml (flüssig) bzw. 10 mg/g (fest)
PERCENT_TO_MG = 10.0


def normalize_symbol(symbol: str) -> str:
    """'Ca' -> 'ca'. Unbekannte Symbole werfen ValueError."""
    key = str(symbol).strip().lower()
    if key not in NUTRIENT_KEYS:
        raise ValueError(f"Unbekannter Nährstoff: {symbol!r}")
    return key


def label_for(key: str) -> str:
    return NUTRIENT_LABELS[NUTRIENT_KEYS.index(key)]


def _normalize_mapping(values: Mapping) -> Dict[str, float]:
    return {normalize_symbol(k): v for k, v in values.items()}


class NutrientProfile(BaseModel):
    """Konzentrationen in mg/L plus EC-Schätzung in mS/cm. Unveränderlich."""

    model_config = ConfigDict(frozen=True, extra='forbid')

    n: float = Field(0.0, ge=0)   # Stickstoff
    p: float = Field(0.0, ge=0)   # Phosphor (elementar)
    k: float = Field(0.0, ge=0)   # Kalium (elementar)
    ca: float = Field(0.0, ge=0)  # Calcium
    mg: float = Field(0.0, ge=0)  # Magnesium
    s: float = Field(0.0, ge=0)   # Schwefel
    fe: float = Field(0.0, ge=0)
    mn: float = Field(0.0, ge=0)
    zn: float = Field(0.0, ge=0)
    cu: float = Field(0.0, ge=0)
    b: float = Field(0.0, ge=0)
    mo: float = Field(0.0, ge=0)
    ec: float = Field(0.0, ge=0)

    @model_validator(mode='before')
    @classmethod
    def _lowercase_symbols(cls, data):
        if isinstance(data, Mapping):
            return {(k.lower() if isinstance(k, str) and k.lower() in NUTRIENT_KEYS + ['ec'] else k): v
                    for k, v in data.items()}
        return data

    def get(self, symbol: str) -> float:
        return getattr(self, normalize_symbol(symbol))

    def as_dict(self, keys=None) -> Dict[str, float]:
        """Nur die Nährstoffe (ohne EC), optional auf ``keys`` beschränkt."""
        return {k: getattr(self, k) for k in (keys or NUTRIENT_KEYS)}


class Fertilizer(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    composition: NutrientProfile = NutrientProfile()  # mg/L pro ml/L bzw. g/L
    unit: Literal['ml', 'g'] = 'ml'
    ec_factor: float = Field(0.0, ge=0)  # mS/cm pro Einheit, für Gegenionen außerhalb des Schemas
    price_per_unit: float = Field(0.0, ge=0, validation_alias=AliasChoices('price_per_unit', 'price_per_ml'))
    is_liquid: bool = True

    @property
    def brand(self) -> str:
        return self.name.split()[0] if self.name.strip() else ''

    @classmethod
    def from_label(cls, name: str, label: Mapping[str, float], **kwargs) -> 'Fertilizer':
        """Baut einen Dünger aus Etikettenangaben in % (N, P2O5, K2O, CaO, MgO, SO3, Spurenelemente)."""
        composition: Dict[str, float] = {}
        for raw_key, percent in label.items():
            key = str(raw_key).strip().lower()
            if key in OXIDE_CONVERSION:
                key, factor = OXIDE_CONVERSION[key]
            else:
                key, factor = normalize_symbol(key), 1.0
            composition[key] = composition.get(key, 0.0) + float(percent) * PERCENT_TO_MG * factor
        return cls(name=name, composition=NutrientProfile(**composition), **kwargs)


class ProductDose(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    dose: float = Field(0.0, ge=0)  # ml/L bzw. g/L


class WaterProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = 'Leitungswasser'
    values: NutrientProfile = NutrientProfile()
    share_percent: float = Field(100.0, ge=0, le=100)

    @model_validator(mode='before')
    @classmethod
    def _wrap_plain_values(cls, data):
        # {"n": 1.3, "ca": 63.2, ...} direkt als Analysewerte akzeptieren
        if isinstance(data, Mapping) and 'values' not in data and data:
            if all(isinstance(k, str) and k.lower() in NUTRIENT_KEYS for k in data):
                return {'values': dict(data)}
        return data


class TargetProfile(BaseModel):
    """Zielwerte einer Phase/Woche. Nur die Nährstoffe in ``targets`` werden bewertet."""

    model_config = ConfigDict(frozen=True)

    name: str = ''
    targets: Dict[str, float]
    weights: Dict[str, float] = {}
    tolerances: Dict[str, float] = {}  # relative Toleranz, z.B. 0.1 = 10 %
    ec: Optional[float] = Field(None, ge=0)
    ec_tolerance: float = Field(0.3, gt=0)  # mS/cm

    @model_validator(mode='before')
    @classmethod
    def _wrap_phase_values(cls, data):
        # gespeichertes Phasenformat {"n": 150, "p": 0, ...}: 0 = kein Ziel
        if isinstance(data, Mapping) and 'targets' not in data:
            if data and all(isinstance(k, str) and k.lower() in NUTRIENT_KEYS for k in data):
                return {'targets': {k: v for k, v in data.items() if v}}
        return data

    @field_validator('targets', 'weights', 'tolerances')
    @classmethod
    def _check_values(cls, values):
        values = _normalize_mapping(values)
        if any(v < 0 for v in values.values()):
            raise ValueError("Werte dürfen nicht negativ sein")
        return values

    @property
    def target_keys(self) -> List[str]:
        """Zielnährstoffe in Schema-Reihenfolge."""
        return [k for k in NUTRIENT_KEYS if k in self.targets]


class WarningKind(str, Enum):
    EC_TOO_HIGH = 'ec_too_high'
    EC_TOO_LOW = 'ec_too_low'
    RATIO_IMBALANCE = 'ratio_imbalance'
    MISSING_PRODUCT = 'missing_product'


class NutrientWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: WarningKind
    message: str


class GrowthPhase(BaseModel):
    name: str
    target: TargetProfile


class Plant(BaseModel):
    name: str
    phases: Dict[str, TargetProfile]

    def phase(self, name: str) -> GrowthPhase:
        return GrowthPhase(name=name, target=self.phases[name].model_copy(update={'name': name}, deep=True))
