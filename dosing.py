# dosing.py
"""
Weight-based dose rendering and fluid bookkeeping.
Doses are stored per kg on the Intervention; the mg/mL figure is
rendered against whatever weight the session carries at display time.
"""
from dataclasses import replace
from typing import Optional

from constants import FLUID_CONSTANTS
from models import DoseInfo, FluidTracker

def make_dose(drug: str, dose_per_kg: float, unit: str, route: str,
              max_dose: Optional[float] = None, **extra) -> DoseInfo:
    if not drug:
        raise ValueError("A dose must name its drug")
    return DoseInfo(drug=drug, dose_per_kg=dose_per_kg, unit=unit, route=route,
                    max_dose=max_dose, **extra)

def _round_amount(amount: float) -> str:
    # Small doses need decimals, large doses do not
    if amount < 1:
        return f"{amount:.2f}"
    if amount < 10:
        return f"{amount:.1f}"
    return str(int(round(amount)))

def calc_dose(dose: DoseInfo, weight_kg: Optional[float]) -> str:
    """
    'Epinephrine 1:10,000 0.18 mg IV/IO' for a known weight,
    'Epinephrine 1:10,000 0.01 mg/kg IV/IO' when weight is unknown.
    """
    if not weight_kg or weight_kg <= 0:
        return f"{dose.drug} {dose.dose_per_kg:g} {dose.unit}/kg {dose.route}"

    raw = dose.dose_per_kg * weight_kg
    amount = raw
    capped = False
    if dose.max_dose is not None and raw >= dose.max_dose:
        amount = dose.max_dose
        capped = True

    text = f"{dose.drug} {_round_amount(amount)} {dose.unit} {dose.route}"
    if capped:
        text += " (MAX DOSE)"
    return text

# --- FLUID TRACKER ---

def _per_kg(total_ml: float, weight_kg: Optional[float]) -> float:
    if not weight_kg or weight_kg <= 0:
        return 0.0
    # mL sums carry float noise: 6 x 44 mL / 4.4 kg must read 60, not 59.999...
    return round(total_ml / weight_kg, 6)

def record_bolus(tracker: FluidTracker, dose: Optional[DoseInfo],
                 weight_kg: Optional[float]) -> FluidTracker:
    """Count the bolus; volume is only known when weight is."""
    total = tracker.total_volume_ml
    if dose is not None and weight_kg and weight_kg > 0:
        total += dose.dose_per_kg * weight_kg
    per_kg = _per_kg(total, weight_kg)
    return replace(
        tracker,
        bolus_count=tracker.bolus_count + 1,
        total_volume_ml=total,
        total_volume_per_kg=per_kg,
        # Latches: a later weight correction is the only thing that clears it
        is_fluid_refractory=tracker.is_fluid_refractory or per_kg >= FLUID_CONSTANTS.REFRACTORY_ML_PER_KG,
    )

def recompute_for_patient(tracker: FluidTracker, weight_kg: Optional[float], fluid_type) -> FluidTracker:
    per_kg = _per_kg(tracker.total_volume_ml, weight_kg)
    return replace(
        tracker,
        fluid_type=fluid_type,
        total_volume_per_kg=per_kg,
        is_fluid_refractory=per_kg >= FLUID_CONSTANTS.REFRACTORY_ML_PER_KG,
    )
