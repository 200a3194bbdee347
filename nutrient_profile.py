import pandas as pd
import numpy as np
import altair as alt

from calculator import contributions, water_contribution
from models import NUTRIENT_KEYS, NUTRIENT_LABELS, label_for

# Dünger-Farben im Volumen-Donut, Wasser separat
PIE_COLORS = ['#1f77b4', '#ff7f0e', '#2ca02c', '#d62728', '#9467bd']


class ProfileCharts:
    """Hilfsfunktionen zum Erzeugen von Vergleichs- und Kreisdiagrammen für Nährstoffprofile."""

    @staticmethod
    def comparison_df(targets, achieved):
        """Ziel vs. erreicht für die Zielnährstoffe (mg/L) plus Abweichung in %."""
        rows = []
        for key in targets.target_keys:
            target = targets.targets[key]
            value = getattr(achieved, key)
            rows.append({
                "Nährstoff": label_for(key),
                "Ziel": float(target),
                "Erreicht": float(value),
                "Abweichung (%)": (value - target) / target * 100 if target else np.nan,
            })
        return pd.DataFrame(rows, columns=["Nährstoff", "Ziel", "Erreicht", "Abweichung (%)"])

    @staticmethod
    def contribution_df(products, catalog, water=None, dilution_share_percent=None):
        """Langes DataFrame: Wasser + Beitrag pro Dünger je Nährstoff."""
        rows = []

        # Wasser hinzufügen, falls vorhanden
        if water is not None:
            water_vals = water_contribution(water, dilution_share_percent)
            for nutr, val in zip(NUTRIENT_LABELS, water_vals):
                if val > 1e-9:
                    rows.append({"Nährstoff": nutr, "Komponente": "Wasser", "value": float(val), "group": "Mischung"})

        # Dünger-Beiträge
        for fname, profile in contributions(products, catalog).items():
            for key, nutr in zip(NUTRIENT_KEYS, NUTRIENT_LABELS):
                val = getattr(profile, key)
                if val > 1e-9:
                    rows.append({"Nährstoff": nutr, "Komponente": fname, "value": float(val), "group": "Mischung"})
        return pd.DataFrame(rows, columns=["Nährstoff", "Komponente", "value", "group"])

    @staticmethod
    def layered_mixture_vs_target(contrib_df, targets):
        """Altair-Layer-Chart: gestapelte Beiträge (Wasser + Dünger) neben grünen Zielbalken."""
        targ_df = pd.DataFrame([
            {"Nährstoff": label_for(k), "Komponente": "Ziel", "value": float(targets.targets[k]), "group": "Ziel"}
            for k in targets.target_keys
        ])

        mix_chart = alt.Chart(contrib_df).mark_bar().encode(
            x=alt.X('Nährstoff:N', title='Nährstoff', sort=NUTRIENT_LABELS),
            y=alt.Y('value:Q', title='mg/L', stack='zero'),
            color=alt.Color('Komponente:N', legend=alt.Legend(title='Komponente')),
            xOffset=alt.XOffset('group:N'),
            tooltip=['Nährstoff', 'Komponente', alt.Tooltip('value:Q', format='.2f')]
        )

        target_chart = alt.Chart(targ_df).mark_bar(color='#2ca02c').encode(
            x=alt.X('Nährstoff:N', sort=NUTRIENT_LABELS),
            y=alt.Y('value:Q'),
            xOffset=alt.XOffset('group:N'),
            tooltip=['Nährstoff', alt.Tooltip('value:Q', format='.2f')]
        )

        return alt.layer(mix_chart, target_chart).properties(height=360)

    @staticmethod
    def pie_df_volume(products, liters, catalog=None):
        """Volumenanteile (ml Dünger vs. ml Wasser) für ``liters`` Liter. Mit ``catalog`` zählen nur ml-Dünger."""
        total_ml = liters * 1000
        rows = []
        fert_ml_total = 0.0
        for item in products:
            if catalog is not None and (item.name not in catalog or catalog[item.name].unit != 'ml'):
                continue
            val = item.dose * liters
            if val > 1e-9:
                rows.append({"Komponente": item.name, "volume": float(val)})
                fert_ml_total += val

        water_ml = total_ml - fert_ml_total
        if water_ml > 1e-9:
            rows.append({"Komponente": "Wasser", "volume": float(water_ml)})

        df = pd.DataFrame(rows, columns=["Komponente", "volume"])
        if df.empty:
            return df
        df['pct'] = df['volume'] / df['volume'].sum() * 100
        return df

    @staticmethod
    def pie_chart_volume(pie_df, title="Volumenanteile", water_color='#9ecae1'):
        """Donut der Volumenanteile; Wasser immer in ``water_color``, Dünger nach Menge sortiert."""
        if pie_df.empty:
            return None

        fert_names = (pie_df[pie_df['Komponente'] != 'Wasser']
                      .sort_values('volume', ascending=False)['Komponente'].tolist())
        colors = [PIE_COLORS[i % len(PIE_COLORS)] for i in range(len(fert_names))]
        if 'Wasser' in set(pie_df['Komponente']):
            domain, colors = fert_names + ['Wasser'], colors + [water_color]
        else:
            domain = fert_names
        palette = alt.Scale(domain=domain, range=colors)

        return alt.Chart(pie_df).mark_arc(innerRadius=40).encode(
            theta=alt.Theta('volume:Q', stack=True),
            order=alt.Order('volume:Q', sort='descending'),
            color=alt.Color('Komponente:N', scale=palette, sort=domain, legend=alt.Legend(title='Komponente')),
            tooltip=[
                alt.Tooltip('Komponente:N'),
                alt.Tooltip('volume:Q', title='Menge (ml)', format='.1f'),
                alt.Tooltip('pct:Q', title='Anteil (%)', format='.1f'),
            ]
        ).properties(height=300, title=title)
