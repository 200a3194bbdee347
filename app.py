import logging
import os

import pandas as pd
import streamlit as st

from calculator import compute, mix_cost, scale_to_volume
from database import get_all_plants, get_catalog, get_water_profile, import_external, open_db
from models import NUTRIENT_KEYS, NUTRIENT_LABELS, ProductDose, WaterProfile
from nutrient_profile import ProfileCharts
from settings import load_settings
from solver import evaluate_fit, suggest_doses

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

# --- KONFIGURATION & DB ---
st.set_page_config(page_title="Hydro Optimizer", layout="wide")
settings = load_settings()
db = open_db(settings.db_path)

# Wenn eine alternative JSON-DB vorhanden ist (z.B. data/import.json),
# beim Start in die TinyDB-Tabellen importieren (ohne Duplikate).
external_db_path = os.path.join('data', 'import.json')
if os.path.exists(external_db_path):
    try:
        import_external(db, external_db_path)
    except (OSError, ValueError) as e:
        logger.warning("Externe DB nicht geladen: %s", e)
        st.warning(f"Externe DB nicht geladen: {e}")

# Standard Wasserqualität (Dagersheim), falls keine Analyse gespeichert ist
DEFAULT_WATER = WaterProfile(name="Leitungswasser Dagersheim",
                             values={"n": 1.3, "p": 0.2, "k": 1.6, "ca": 63.2, "mg": 14.1, "s": 17.2})
BATCH_LITERS = 10

catalog = get_catalog(db)
plants = get_all_plants(db)
water = get_water_profile(db) or DEFAULT_WATER

if "products" not in st.session_state:
    st.session_state["products"] = []


def show_result(products, target=None, phase=None):
    """Zeigt Dosierung, berechnetes Profil, Warnungen und Diagramme."""
    profile, warnings = compute(products, water, share, catalog=catalog,
                                config=settings.calculator, phase=phase)

    st.subheader(f"Dosierung für {BATCH_LITERS} Liter Wasser")
    st.table(pd.DataFrame([
        {"Dünger": item.name, "Einheit": catalog[item.name].unit if item.name in catalog else "?",
         "pro Liter": item.dose, f"pro {BATCH_LITERS}L": round(batch.dose, 2)}
        for item, batch in zip(products, scale_to_volume(products, BATCH_LITERS))
    ]))
    st.metric(f"Gesamtkosten pro {BATCH_LITERS}L", f"{mix_cost(products, catalog, BATCH_LITERS):.2f} €")
    st.metric("EC (geschätzt)", f"{profile.ec:.2f} mS/cm")

    for w in warnings:
        st.warning(w.message)

    st.dataframe(pd.DataFrame([profile.as_dict()]).rename(columns=dict(zip(NUTRIENT_KEYS, NUTRIENT_LABELS))))

    if target is not None:
        st.subheader("Profil-Abgleich (Ziel vs. Erreicht)")
        st.dataframe(ProfileCharts.comparison_df(target, profile))
        contrib_df = ProfileCharts.contribution_df(products, catalog, water, share)
        st.altair_chart(ProfileCharts.layered_mixture_vs_target(contrib_df, target), use_container_width=True)
        logger.debug("Toleranzwerte: %s", evaluate_fit(target, profile, settings.solver))

    pie = ProfileCharts.pie_chart_volume(ProfileCharts.pie_df_volume(products, BATCH_LITERS, catalog))
    if pie is not None:
        st.altair_chart(pie, use_container_width=True)


# --- UI NAVIGATION ---
st.title("🌿 Hydroponik Nährstoff-Optimizer")
st.info(f"**Basis: {water.name}**\n(Ca: {water.values.ca}, Mg: {water.values.mg} mg/L)")
share = st.slider("Anteil Leitungswasser (%)", 0, 100, int(water.share_percent))

tab1, tab2 = st.tabs(["🧮 Optimierung", "🧪 Mischung prüfen"])

# --- TAB 1: OPTIMIERUNG ---
with tab1:
    st.header("Mischung berechnen")

    if not plants or not catalog:
        st.warning("Keine Pflanzen oder Düngemittel in der Datenbank gefunden!")
    else:
        col1, col2 = st.columns(2)
        with col1:
            p_name = st.selectbox("Pflanze wählen", [p.name for p in plants])
            plant = next(p for p in plants if p.name == p_name)
            phase_name = st.selectbox("Wachstumsphase", list(plant.phases.keys()))
        with col2:
            brands = sorted({f.brand for f in catalog.values()})
            chosen = st.multiselect("Marken", brands, default=brands)

        phase = plant.phase(phase_name)
        with st.expander("Zielprofil Details (mg/L)"):
            st.write(phase.target.targets)

        if st.button("🚀 Besten Mix berechnen", type="primary"):
            candidates = [(name, f) for name, f in catalog.items() if f.brand in chosen]
            suggestion = suggest_doses(phase.target, candidates, water, share, settings.solver,
                                           calculator_config=settings.calculator)
            if not suggestion:
                st.error("Keine passende Kombination innerhalb der Toleranz gefunden.")
            else:
                # Vorschlag ersetzt die aktuelle Produktliste
                st.session_state["products"] = [item.model_dump() for item in suggestion]
                show_result(suggestion, phase.target, phase.name)

# --- TAB 2: MISCHUNG PRÜFEN ---
with tab2:
    st.header("Aktuelle Mischung")
    current = {item["name"]: item["dose"] for item in st.session_state["products"]}
    products = []
    for name, fert in catalog.items():
        dose = st.number_input(f"{name} ({fert.unit}/L)", min_value=0.0,
                               value=float(current.get(name, 0.0)), step=0.1, key=f"dose_{name}")
        if dose > 0:
            products.append(ProductDose(name=name, dose=dose))
    show_result(products)
