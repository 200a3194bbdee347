"""Berechnet die Nährlösung aus Wasseranalyse und dosierten Düngern.

Alle Funktionen sind rein: keine Datenbank, kein Zustand. Der Dünger-Katalog
(Name -> Fertilizer) wird immer als Argument übergeben.
"""
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from errors import MissingProductError
from models import (
    NUTRIENT_KEYS,
    Fertilizer,
    NutrientProfile,
    NutrientWarning,
    ProductDose,
    WarningKind,
    WaterProfile,
    label_for,
    normalize_symbol,
)
from settings import CalculatorConfig

logger = logging.getLogger(__name__)


def water_contribution(water: WaterProfile, dilution_share_percent: Optional[float] = None) -> np.ndarray:
    """Wasseranteil pro Nährstoff (mg/L), in der Reihenfolge von NUTRIENT_KEYS."""
    if dilution_share_percent is None:
        dilution_share_percent = water.share_percent
    values = np.array([getattr(water.values, k) for k in NUTRIENT_KEYS])
    return values * (dilution_share_percent / 100.0)


def composition_matrix(fertilizers: Sequence[Fertilizer]) -> np.ndarray:
    """Matrix (Nährstoffe x Dünger) mit mg/L pro Einheit Dosis."""
    if not fertilizers:
        return np.zeros((len(NUTRIENT_KEYS), 0))
    matrix = [[getattr(f.composition, k) for k in NUTRIENT_KEYS] for f in fertilizers]
    return np.array(matrix).T


def resolve_products(
    products: Sequence[ProductDose],
    catalog: Mapping[str, Fertilizer],
    config: Optional[CalculatorConfig] = None,
) -> Tuple[List[Tuple[Fertilizer, float]], List[NutrientWarning]]:
    """Ordnet jeder Dosis ihren Dünger zu. Unbekannte Namen je nach ``missing_product``."""
    config = config or CalculatorConfig()
    resolved = []
    warnings = []
    for item in products:
        fert = catalog.get(item.name)
        if fert is None:
            if config.missing_product == 'error':
                raise MissingProductError(item.name)
            logger.debug("Dünger %r nicht im Katalog, Beitrag 0", item.name)
            if config.missing_product == 'warn':
                warnings.append(NutrientWarning(
                    kind=WarningKind.MISSING_PRODUCT,
                    message=f"Dünger '{item.name}' nicht im Katalog, wird ignoriert",
                ))
            continue
        resolved.append((fert, item.dose))
    return resolved, warnings


def contributions(
    products: Sequence[ProductDose],
    catalog: Mapping[str, Fertilizer],
    config: Optional[CalculatorConfig] = None,
) -> Dict[str, NutrientProfile]:
    """Beitrag jedes Düngers (mg/L). Mehrfach gelistete Dünger werden addiert."""
    resolved, _ = resolve_products(products, catalog, config)
    totals: Dict[str, np.ndarray] = {}
    for fert, dose in resolved:
        contrib = composition_matrix([fert])[:, 0] * dose
        totals[fert.name] = totals.get(fert.name, 0.0) + contrib
    return {name: NutrientProfile(**dict(zip(NUTRIENT_KEYS, values))) for name, values in totals.items()}


def estimate_ec(values: Mapping[str, float], extra_ec: float = 0.0, weights: Optional[Mapping[str, float]] = None) -> float:
    """Grobe EC-Schätzung (mS/cm) als gewichtete Summe der Ionenbeiträge."""
    weights = weights if weights is not None else CalculatorConfig().ec_weights
    ec = sum(values.get(k, 0.0) * w for k, w in weights.items())
    return max(0.0, ec + extra_ec)


def classify(profile: NutrientProfile, config: Optional[CalculatorConfig] = None, phase: Optional[str] = None) -> List[NutrientWarning]:
    """Vergleicht EC und Nährstoffverhältnisse mit den Sollbereichen."""
    config = config or CalculatorConfig()
    warnings = []

    ec_min, ec_max = config.ec_range(phase)
    if profile.ec > ec_max:
        warnings.append(NutrientWarning(
            kind=WarningKind.EC_TOO_HIGH,
            message=f"EC zu hoch: {profile.ec:.2f} mS/cm (max. {ec_max:.2f})",
        ))
    elif profile.ec < ec_min:
        warnings.append(NutrientWarning(
            kind=WarningKind.EC_TOO_LOW,
            message=f"EC zu niedrig: {profile.ec:.2f} mS/cm (min. {ec_min:.2f})",
        ))

    for pair, (low, high) in config.ratio_ranges.items():
        a, b = (normalize_symbol(x) for x in pair.split(':'))
        va, vb = profile.get(a), profile.get(b)
        if va <= 0 or vb <= 0:
            continue
        ratio = va / vb
        if not low <= ratio <= high:
            warnings.append(NutrientWarning(
                kind=WarningKind.RATIO_IMBALANCE,
                message=f"Verhältnis {label_for(a)}:{label_for(b)} = {ratio:.2f} "
                        f"außerhalb {low:.2f}–{high:.2f}",
            ))
    return warnings


def compute(
    products: Sequence[ProductDose],
    water: WaterProfile,
    dilution_share_percent: Optional[float] = None,
    *,
    catalog: Mapping[str, Fertilizer],
    config: Optional[CalculatorConfig] = None,
    phase: Optional[str] = None,
) -> Tuple[NutrientProfile, List[NutrientWarning]]:
    """Ergebnisprofil der Mischung plus Warnungen.

    Wasser * Anteil + Summe(Zusammensetzung * Dosis), danach EC-Schätzung.
    Dosen müssen vom Aufrufer bereits auf >= 0 geprüft sein.
    """
    config = config or CalculatorConfig()
    resolved, warnings = resolve_products(products, catalog, config)

    totals = water_contribution(water, dilution_share_percent)
    extra_ec = 0.0
    if resolved:
        ferts = [fert for fert, _ in resolved]
        doses = np.array([dose for _, dose in resolved], dtype=float)
        totals = totals + composition_matrix(ferts) @ doses
        extra_ec = float(sum(fert.ec_factor * dose for fert, dose in resolved))

    values = {k: max(0.0, float(v)) for k, v in zip(NUTRIENT_KEYS, totals)}
    ec = estimate_ec(values, extra_ec, config.ec_weights)
    profile = NutrientProfile(**values, ec=ec)

    warnings.extend(classify(profile, config, phase))
    return profile, warnings


def mix_cost(products: Sequence[ProductDose], catalog: Mapping[str, Fertilizer], liters: float = 1.0) -> float:
    """Kosten der Mischung für ``liters`` Liter Nährlösung."""
    total = 0.0
    for item in products:
        fert = catalog.get(item.name)
        if fert is not None:
            total += item.dose * liters * fert.price_per_unit
    return total


def scale_to_volume(products: Sequence[ProductDose], liters: float) -> List[ProductDose]:
    """Dosis pro Liter -> absolute Menge für ``liters`` Liter (z.B. ml pro 10L)."""
    return [ProductDose(name=item.name, dose=item.dose * liters) for item in products]
