import numpy as np
import pytest

from calculator import compute
from models import Fertilizer, ProductDose, TargetProfile, WaterProfile
from settings import CalculatorConfig, SolverConfig
from solver import (
    evaluate_fit,
    fit_doses,
    round_doses,
    select_next,
    suggest_doses,
    within_tolerance,
)


def test_two_product_example(example_targets, simple_catalog, example_water):
    result = suggest_doses(example_targets, simple_catalog, example_water, 100)
    doses = {item.name: item.dose for item in result}
    assert set(doses) == {"Acme Nitro", "Acme KalCal"}
    assert doses["Acme Nitro"] == pytest.approx(14.5)
    assert 8.5 <= doses["Acme KalCal"] <= 10.0

    profile, _ = compute(result, example_water, 100, catalog=simple_catalog)
    assert profile.n == pytest.approx(150)
    assert within_tolerance(example_targets, profile)


def test_result_in_catalog_order(example_targets, simple_catalog, example_water):
    result = suggest_doses(example_targets, simple_catalog, example_water, 100)
    assert [item.name for item in result] == ["Acme Nitro", "Acme KalCal"]


def test_candidates_as_pairs(example_targets, simple_catalog, example_water):
    as_mapping = suggest_doses(example_targets, simple_catalog, example_water, 100)
    as_pairs = suggest_doses(example_targets, list(simple_catalog.items()), example_water, 100)
    assert as_mapping == as_pairs


def test_unsupplied_nutrient_fails(simple_catalog):
    targets = TargetProfile(targets={"n": 150, "mg": 50})
    assert suggest_doses(targets, simple_catalog, WaterProfile(), 100) == []


def test_empty_catalog_or_targets():
    water = WaterProfile()
    assert suggest_doses(TargetProfile(targets={"n": 100}), {}, water) == []
    catalog = {"X": Fertilizer(name="X", composition={"n": 10})}
    assert suggest_doses(TargetProfile(targets={}), catalog, water) == []


def test_idempotent(full_catalog):
    targets = TargetProfile(targets={"n": 180, "p": 45, "k": 250, "ca": 160, "mg": 45, "s": 60})
    water = WaterProfile(values={"ca": 40, "mg": 10, "s": 15}, share_percent=80)
    config = SolverConfig(dose_step=0.01)
    first = suggest_doses(targets, full_catalog, water, config=config)
    second = suggest_doses(targets, full_catalog, water, config=config)
    assert first == second


def test_round_trip_within_tolerance(full_catalog):
    targets = TargetProfile(targets={"n": 180, "p": 45, "k": 250, "ca": 160, "mg": 45, "s": 60})
    water = WaterProfile(values={"ca": 40, "mg": 10, "s": 15}, share_percent=80)
    config = SolverConfig(dose_step=0.01)
    result = suggest_doses(targets, full_catalog, water, config=config)
    assert 0 < len(result) <= config.max_products

    profile, _ = compute(result, water, catalog=full_catalog)
    assert within_tolerance(targets, profile, config)

    # Ergebnis zurückgefüttert bleibt stabil
    again, _ = compute(list(result), water, catalog=full_catalog)
    assert again == profile


def test_no_negative_doses_and_max_products(full_catalog):
    targets = TargetProfile(targets={"n": 180, "p": 45, "k": 250, "ca": 160, "mg": 45, "s": 60, "fe": 2})
    water = WaterProfile()
    for max_products in (1, 2, 3, 6):
        config = SolverConfig(max_products=max_products)
        result = suggest_doses(targets, full_catalog, water, config=config)
        assert len(result) <= max_products
        assert all(item.dose > 0 for item in result)


def test_dose_granularity(full_catalog):
    targets = TargetProfile(targets={"n": 150, "ca": 180})
    config = SolverConfig(dose_step=0.05)
    result = suggest_doses(targets, full_catalog, WaterProfile(), config=config)
    assert result
    for item in result:
        assert item.dose / 0.05 == pytest.approx(round(item.dose / 0.05))


def test_max_dose_is_respected():
    catalog = {"Schwach": Fertilizer(name="Schwach", composition={"n": 5})}
    targets = TargetProfile(targets={"n": 40}, tolerances={"n": 0.5})
    result = suggest_doses(targets, catalog, WaterProfile(), config=SolverConfig(max_dose=6))
    assert result == [ProductDose(name="Schwach", dose=6.0)]


def test_water_alone_meets_target():
    water = WaterProfile(values={"ca": 100})
    catalog = {"X": Fertilizer(name="X", composition={"ca": 10})}
    assert suggest_doses(TargetProfile(targets={"ca": 100}), catalog, water) == []


def test_ec_target_is_checked(example_targets, simple_catalog, example_water):
    strict = example_targets.model_copy(update={"ec": 0.2, "ec_tolerance": 0.05})
    assert suggest_doses(strict, simple_catalog, example_water, 100) == []


def test_tie_break_prefers_catalog_order():
    catalog = {
        "B Marke": Fertilizer(name="B Marke", composition={"n": 10}),
        "A Marke": Fertilizer(name="A Marke", composition={"n": 10}),
    }
    result = suggest_doses(TargetProfile(targets={"n": 100}), catalog, WaterProfile())
    assert result == [ProductDose(name="B Marke", dose=10.0)]


def test_select_next_picks_largest_gain():
    matrix = np.array([[1.0, 0.0, 2.0], [0.0, 1.0, 0.0]])
    residual = np.array([1.0, 3.0])
    assert select_next(matrix, residual, []) == 1
    assert select_next(matrix, residual, [1]) in (0, 2)
    # negative Korrelation: nie auswählen
    assert select_next(matrix, np.array([-1.0, -1.0]), []) is None


def test_fit_doses_non_negative():
    matrix = np.array([[1.0, 1.0], [0.0, 1.0]])
    rhs = np.array([1.0, -1.0])
    doses = fit_doses(matrix, rhs)
    assert np.all(doses >= 0)


def test_round_doses_drops_zeros():
    result = round_doses(["a", "b", "c"], [1.234, 0.04, 0.96], 0.1)
    assert result == [ProductDose(name="a", dose=1.2), ProductDose(name="c", dose=1.0)]


def test_evaluate_fit_uses_target_tolerances(example_targets):
    profile, _ = compute([], WaterProfile(values={"n": 140, "k": 200, "ca": 100}), catalog={})
    loose = example_targets.model_copy(update={"tolerances": {"n": 0.1}})
    assert evaluate_fit(example_targets, profile)["n"] == pytest.approx(10 / 22.5)
    assert evaluate_fit(loose, profile)["n"] == pytest.approx(10 / 15)


def test_acceptance_uses_callers_ec_formula(example_targets, simple_catalog, example_water):
    target = example_targets.model_copy(update={"ec": 1.14, "ec_tolerance": 0.3})
    config = CalculatorConfig(ec_weights={"n": 0.004, "k": 0.004, "ca": 0.004})

    # Standardformel: EC ≈ 1.14, passt
    assert suggest_doses(target, simple_catalog, example_water, 100) != []
    # gleiche Dosen ergeben mit dieser Formel EC ≈ 1.92
    assert suggest_doses(target, simple_catalog, example_water, 100, calculator_config=config) == []


def test_round_trip_with_custom_ec_weights(example_targets, simple_catalog, example_water):
    target = example_targets.model_copy(update={"ec": 1.9, "ec_tolerance": 0.3})
    config = CalculatorConfig(ec_weights={"n": 0.004, "k": 0.004, "ca": 0.004})
    result = suggest_doses(target, simple_catalog, example_water, 100, calculator_config=config)
    assert result
    profile, _ = compute(result, example_water, 100, catalog=simple_catalog, config=config)
    assert within_tolerance(target, profile)


def test_select_next_skips_excluded():
    matrix = np.array([[2.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    residual = np.array([1.0, 0.2])
    assert select_next(matrix, residual, set()) == 0
    assert select_next(matrix, residual, {0}) == 1
    assert select_next(matrix, residual, {0, 1}) == 2
    assert select_next(matrix, residual, {0, 1, 2}) is None
