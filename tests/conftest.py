import pytest

from models import Fertilizer, NutrientProfile, TargetProfile, WaterProfile


@pytest.fixture
def simple_catalog():
    return {
        "Acme Nitro": Fertilizer(name="Acme Nitro", composition={"n": 10}),
        "Acme KalCal": Fertilizer(name="Acme KalCal", composition={"k": 20, "ca": 15}),
    }


@pytest.fixture
def example_water():
    return WaterProfile(values={"n": 5, "k": 2, "ca": 10}, share_percent=100)


@pytest.fixture
def example_targets():
    return TargetProfile(name="Blüte", targets={"N": 150, "K": 200, "Ca": 100})


@pytest.fixture
def full_catalog():
    """Übliche Einzelsalze, Zusammensetzung in mg/L pro g/L."""
    return {
        "Calciumnitrat": Fertilizer(name="Calciumnitrat", unit="g", is_liquid=False,
                                    composition={"n": 155, "ca": 190}, price_per_unit=0.002),
        "Kaliumnitrat": Fertilizer(name="Kaliumnitrat", unit="g", is_liquid=False,
                                   composition={"n": 137, "k": 384}, price_per_unit=0.003),
        "Monokaliumphosphat": Fertilizer(name="Monokaliumphosphat", unit="g", is_liquid=False,
                                         composition={"p": 227, "k": 282}, price_per_unit=0.004),
        "Bittersalz": Fertilizer(name="Bittersalz", unit="g", is_liquid=False,
                                 composition={"mg": 98, "s": 129}, price_per_unit=0.001),
        "Kaliumsulfat": Fertilizer(name="Kaliumsulfat", unit="g", is_liquid=False,
                                   composition={"k": 415, "s": 170}, price_per_unit=0.002),
        "Eisenchelat": Fertilizer(name="Eisenchelat", unit="g", is_liquid=False,
                                  composition=NutrientProfile(fe=110), price_per_unit=0.02),
    }
