"""Schlägt eine kleine Düngerkombination samt Dosierung für ein Zielprofil vor.

Zwei Stufen:
  1. Auswahl: greedy (Matching Pursuit) den Dünger hinzunehmen, der das
     gewichtete Restdefizit am stärksten senkt.
  2. Dosierung: nicht-negative kleinste Quadrate (Lawson-Hanson, scipy nnls)
     über die ausgewählten Dünger.
Nach jeder Runde wird gerundet, mit ``calculator.compute`` nachgerechnet und
gegen die Toleranzen geprüft. Leere Liste = kein akzeptabler Mix gefunden.
"""
import logging
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np
from scipy.optimize import lsq_linear, nnls

from calculator import composition_matrix, compute, water_contribution
from models import NUTRIENT_KEYS, Fertilizer, NutrientProfile, ProductDose, TargetProfile, WaterProfile
from settings import CalculatorConfig, SolverConfig

logger = logging.getLogger(__name__)

Candidates = Union[Mapping[str, Fertilizer], Iterable[Tuple[str, Fertilizer]]]


def _as_pairs(candidates: Candidates) -> List[Tuple[str, Fertilizer]]:
    items = candidates.items() if isinstance(candidates, Mapping) else candidates
    pairs, seen = [], set()
    for name, fert in items:
        if name not in seen:
            seen.add(name)
            pairs.append((name, fert))
    return pairs


def allowed_deviation(key: str, target: float, targets: TargetProfile, config: SolverConfig) -> float:
    """Erlaubte Abweichung in mg/L: max(relativ * Ziel, absolut)."""
    rel = targets.tolerances.get(key, config.relative_tolerances.get(key, 0.15))
    return max(rel * target, config.absolute_tolerances.get(key, 0.0))


def build_system(
    targets: TargetProfile,
    fertilizers: Sequence[Fertilizer],
    water: WaterProfile,
    dilution_share_percent: Optional[float],
    config: SolverConfig,
) -> Tuple[List[str], np.ndarray, np.ndarray]:
    """Gewichtetes System A·x ≈ b über die Zielnährstoffe.

    Jede Zeile wird mit Gewicht / Zielwert skaliert, damit relative Abweichungen zählen.
    """
    keys = targets.target_keys
    rows = [NUTRIENT_KEYS.index(k) for k in keys]
    base = water_contribution(water, dilution_share_percent)[rows]
    target = np.array([targets.targets[k] for k in keys])

    scale = np.array([
        targets.weights.get(k, config.weights.get(k, 1.0))
        / max(targets.targets[k], config.absolute_tolerances.get(k, 0.0), 1e-9)
        for k in keys
    ])
    matrix = composition_matrix(list(fertilizers))[rows, :]
    return keys, matrix * scale[:, None], (target - base) * scale


def select_next(matrix: np.ndarray, residual: np.ndarray, excluded: Collection[int], min_gain: float = 1e-9) -> Optional[int]:
    """Index des Düngers mit der größten Restsenkung bei Dosis >= 0, sonst None.

    Bei Gleichstand gewinnt der frühere Katalogeintrag.
    """
    best, best_gain = None, min_gain
    for j in range(matrix.shape[1]):
        if j in excluded:
            continue
        column = matrix[:, j]
        norm = float(column @ column)
        corr = float(column @ residual)
        if norm <= 0 or corr <= 0:
            continue
        gain = corr * corr / norm
        if gain > best_gain * (1 + 1e-9):
            best, best_gain = j, gain
    return best


def fit_doses(matrix: np.ndarray, rhs: np.ndarray, max_dose: Optional[float] = None) -> np.ndarray:
    """NNLS-Dosierung; mit ``max_dose`` bei Überschreitung BVLS innerhalb [0, max_dose]."""
    doses, _ = nnls(matrix, rhs)
    if max_dose is not None and np.any(doses > max_dose):
        res = lsq_linear(matrix, rhs, bounds=(0, max_dose), method='bvls')
        doses = res.x
    return np.clip(doses, 0.0, max_dose)


def round_doses(names: Sequence[str], doses: Sequence[float], step: float) -> List[ProductDose]:
    """Rundet auf ``step`` und verwirft Dosen, die auf 0 fallen."""
    result = []
    for name, dose in zip(names, doses):
        rounded = round(round(float(dose) / step) * step, 6)
        if rounded > 0:
            result.append(ProductDose(name=name, dose=rounded))
    return result


def evaluate_fit(targets: TargetProfile, profile: NutrientProfile, config: Optional[SolverConfig] = None) -> Dict[str, float]:
    """Abweichung / erlaubte Abweichung je Zielnährstoff (<= 1 heißt in Toleranz), ggf. plus 'ec'."""
    config = config or SolverConfig()
    scores = {}
    for key in targets.target_keys:
        target = targets.targets[key]
        allowed = allowed_deviation(key, target, targets, config)
        deviation = abs(getattr(profile, key) - target)
        scores[key] = deviation / allowed if allowed > 0 else (0.0 if deviation == 0 else float('inf'))
    if targets.ec is not None:
        scores['ec'] = abs(profile.ec - targets.ec) / targets.ec_tolerance
    return scores


def within_tolerance(targets: TargetProfile, profile: NutrientProfile, config: Optional[SolverConfig] = None) -> bool:
    return all(score <= 1.0 for score in evaluate_fit(targets, profile, config).values())


def suggest_doses(
    targets: TargetProfile,
    candidates: Candidates,
    water: WaterProfile,
    dilution_share_percent: Optional[float] = None,
    config: Optional[SolverConfig] = None,
    calculator_config: Optional[CalculatorConfig] = None,
) -> List[ProductDose]:
    """Schlägt Dünger und Dosen (pro Liter) für ``targets`` vor.

    Gibt höchstens ``config.max_products`` Einträge in Katalogreihenfolge zurück,
    oder eine leere Liste, wenn keine Kombination die Toleranzen einhält.
    ``calculator_config`` muss der Konfiguration entsprechen, mit der der Aufrufer
    das Ergebnis nachrechnet (EC-Formel).
    """
    config = config or SolverConfig()
    pairs = _as_pairs(candidates)
    if not targets.targets or not pairs:
        logger.info("Keine Ziele oder keine Dünger, kein Vorschlag")
        return []

    catalog = dict(pairs)
    names = [name for name, _ in pairs]

    water_only, _ = compute([], water, dilution_share_percent, catalog=catalog, config=calculator_config)
    if within_tolerance(targets, water_only, config):
        logger.info("Wasser allein erfüllt das Ziel %r, kein Dünger nötig", targets.name)
        return []

    _, matrix, rhs = build_system(targets, [fert for _, fert in pairs], water, dilution_share_percent, config)

    selected: List[int] = []
    rejected: Set[int] = set()
    residual = rhs
    # Runden begrenzt: Terminierung garantiert
    for round_no in range(2 * config.max_products):
        if len(selected) >= config.max_products:
            break
        j = select_next(matrix, residual, rejected.union(selected), config.min_gain)
        if j is None:
            break
        selected.append(j)

        doses = fit_doses(matrix[:, selected], rhs, config.max_dose)
        residual = rhs - matrix[:, selected] @ doses
        # Dünger mit Dosis 0 geben ihren Platz frei und werden nicht erneut gewählt
        kept = [(i, d) for i, d in zip(selected, doses) if d > 0]
        rejected.update(i for i, d in zip(selected, doses) if d <= 0)
        selected = [i for i, _ in kept]
        logger.debug("Runde %d: %s", round_no, {names[i]: round(float(d), 3) for i, d in kept})

        suggestion = round_doses([names[i] for i, _ in kept], [d for _, d in kept], config.dose_step)
        profile, _ = compute(suggestion, water, dilution_share_percent, catalog=catalog, config=calculator_config)
        if suggestion and within_tolerance(targets, profile, config):
            order = {name: idx for idx, name in enumerate(names)}
            return sorted(suggestion, key=lambda item: order[item.name])

    logger.info("Kein Mix innerhalb der Toleranz für %r gefunden", targets.name)
    return []
