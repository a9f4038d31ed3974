# -*- coding: utf-8 -*-
"""
Built-in Emission Factor Tables

Default emission factors used when neither the cache nor the factor store
provides a value. Factors are kg CO2e per unit, keyed by activity type and
normalized unit (lower case, whitespace runs replaced by ``_``).

Tables:
    - DEFAULT_EMISSION_FACTORS: activity_type -> unit_key -> factor
    - CBAM_DEFAULT_FACTORS: goods_category -> (direct, indirect, precursor)
      intensities in tCO2e per tonne of goods
    - FALLBACK_SEARCH_FACTORS: offline answers for external factor search

Sources: IPCC 2006 Guidelines defaults, DEFRA conversion factors, EU CBAM
default values (Implementing Regulation 2023/1773, transitional period).

Author: GreenLang Platform Team
Date: March 2026
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

DEFAULT_FACTOR_SOURCE = "default"
CBAM_DEFAULT_SOURCE = "cbam_default"


# ---------------------------------------------------------------------------
# Activity emission factors (kg CO2e per unit)
# ---------------------------------------------------------------------------

DEFAULT_EMISSION_FACTORS: Dict[str, Dict[str, float]] = {
    # Scope 1 - Stationary combustion
    "stationary_combustion": {
        "natural_gas_m3": 2.02,
        "natural_gas_kwh": 0.184,
        "diesel_l": 2.68,
        "lpg_kg": 2.98,
        "coal_kg": 2.42,
        "fuel_oil_l": 2.96,
    },
    # Scope 1 - Mobile combustion
    "mobile_combustion": {
        "petrol_l": 2.31,
        "diesel_l": 2.68,
        "cng_m3": 2.02,
        "lpg_l": 1.51,
        "km_car_petrol": 0.17,
        "km_car_diesel": 0.16,
        "km_truck": 0.89,
        "km_van": 0.25,
    },
    # Scope 1 - Process emissions
    "process_emissions": {
        "cement_tonne": 525,
        "lime_tonne": 750,
        "steel_tonne": 1850,
        "aluminum_tonne": 11000,
        "ammonia_tonne": 1600,
    },
    # Scope 1 - Fugitive emissions (GWP-weighted)
    "fugitive_emissions": {
        "refrigerant_r410a_kg": 2088,
        "refrigerant_r134a_kg": 1430,
        "refrigerant_r22_kg": 1810,
        "sf6_kg": 22800,
        "methane_kg": 25,
    },
    # Scope 2 - Purchased electricity (global average grid)
    "purchased_electricity": {
        "kwh": 0.42,
        "mwh": 420,
    },
    # Scope 2 - Purchased heat / steam
    "purchased_heat_steam": {
        "kwh": 0.18,
        "mwh": 180,
        "gj": 50,
    },
    # Scope 3
    "purchased_goods": {
        "usd": 0.5,
        "kg_generic": 2.0,
    },
    "capital_goods": {
        "usd": 0.5,
    },
    "fuel_energy": {
        "kwh_wtt": 0.03,
    },
    "upstream_transport": {
        "tonne_km_road": 0.1,
        "tonne_km_rail": 0.03,
        "tonne_km_sea": 0.01,
        "tonne_km_air": 0.6,
    },
    "waste": {
        "kg_landfill": 0.58,
        "kg_incineration": 0.02,
        "kg_recycling": 0.02,
    },
    "business_travel": {
        "km_air_short": 0.255,
        "km_air_long": 0.195,
        "km_rail": 0.035,
        "km_car": 0.17,
        "hotel_night": 31.0,
    },
    "employee_commuting": {
        "km_car": 0.17,
        "km_bus": 0.089,
        "km_train": 0.035,
        "km_bike": 0,
        "km_walk": 0,
    },
    "downstream_transport": {
        "tonne_km": 0.1,
    },
    "processing": {
        "unit": 10,
    },
    "use_of_products": {
        "kwh": 0.42,
        "unit": 50,
    },
    "end_of_life": {
        "kg_landfill": 0.58,
        "kg_recycling": 0.02,
    },
    "air_travel": {
        "km": 0.195,
        "passenger_km": 0.195,
    },
}


# ---------------------------------------------------------------------------
# CBAM default intensities (tCO2e per tonne of goods)
# ---------------------------------------------------------------------------

CBAM_DEFAULT_FACTORS: Dict[str, Tuple[float, float, float]] = {
    "cement": (0.525, 0.05, 0.0),
    "iron_steel": (1.85, 0.2, 0.3),
    "aluminum": (1.5, 8.5, 1.0),
    "fertilizers": (1.6, 0.1, 0.0),
    "electricity": (0.0, 0.42, 0.0),
    "hydrogen": (9.0, 0.5, 0.0),
}

CBAM_GENERIC_FACTORS: Tuple[float, float, float] = (1.0, 0.2, 0.1)


# ---------------------------------------------------------------------------
# Offline answers for external factor search
# ---------------------------------------------------------------------------

FALLBACK_SEARCH_FACTORS: Dict[str, Dict[str, object]] = {
    "electricity": {
        "activity_type": "purchased_electricity",
        "factor": 0.42,
        "unit": "kWh",
        "source": "global_average",
        "notes": "Global average grid emission factor",
    },
    "natural_gas": {
        "activity_type": "stationary_combustion",
        "factor": 2.02,
        "unit": "m3",
        "source": "ipcc_default",
        "notes": "IPCC default for natural gas",
    },
    "diesel": {
        "activity_type": "mobile_combustion",
        "factor": 2.68,
        "unit": "L",
        "source": "ipcc_default",
        "notes": "IPCC default for diesel",
    },
}


_WHITESPACE = re.compile(r"\s+")


def normalize_unit(unit: str) -> str:
    """Normalize a unit into a default-table key.

    Example:
        >>> normalize_unit("Natural Gas  m3")
        'natural_gas_m3'
    """
    return _WHITESPACE.sub("_", unit.lower())


def lookup_default_factor(activity_type: str, unit: str) -> Optional[float]:
    """Return the built-in factor for ``activity_type``/``unit`` or None."""
    table = DEFAULT_EMISSION_FACTORS.get(activity_type)
    if table is None or not unit:
        return None
    factor = table.get(normalize_unit(unit))
    return float(factor) if factor is not None else None


def cbam_defaults(goods_category: str) -> Tuple[float, float, float]:
    """CBAM (direct, indirect, precursor) intensities for a goods category."""
    return CBAM_DEFAULT_FACTORS.get(
        (goods_category or "").lower(), CBAM_GENERIC_FACTORS,
    )


__all__ = [
    "DEFAULT_FACTOR_SOURCE",
    "CBAM_DEFAULT_SOURCE",
    "DEFAULT_EMISSION_FACTORS",
    "CBAM_DEFAULT_FACTORS",
    "CBAM_GENERIC_FACTORS",
    "FALLBACK_SEARCH_FACTORS",
    "normalize_unit",
    "lookup_default_factor",
    "cbam_defaults",
]
