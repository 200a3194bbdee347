class HydroOptimizerError(Exception):
    """Basisklasse für alle Fehler des Optimizers."""


class MissingProductError(HydroOptimizerError, KeyError):
    """Ein Produkt aus der Dosierliste fehlt im Dünger-Katalog."""

    def __init__(self, name):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return f"Dünger '{self.name}' nicht im Katalog gefunden"


class SettingsError(HydroOptimizerError):
    """Einstellungsdatei fehlt, ist kein JSON oder enthält ungültige Werte."""
