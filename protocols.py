# protocols.py
from dataclasses import replace
from typing import Optional, Tuple

from age_profiles import get_age_category
from constants import FLUID_CONSTANTS, FluidType
from dosing import make_dose
from models import (
    AgeCategory,
    CheckType,
    Intervention,
    Letter,
    ReassessmentCheck,
    Session,
    Severity,
)

def step(action: str, **kwargs) -> Intervention:
    """Unnumbered intervention; ids are assigned when the threat is created."""
    return Intervention(id="", action=action, **kwargs)

def number_interventions(threat_id: str, steps) -> Tuple[Intervention, ...]:
    # '<threat id>-<position>' is stable across replays of the same answers
    return tuple(replace(s, id=f"{threat_id}-{n}") for n, s in enumerate(steps, start=1))

class FluidSelector:
    @staticmethod
    def select_default_fluid(age: Optional[str]) -> FluidType:
        # Neonates: lactate metabolism is immature, stay on isotonic saline
        if get_age_category(age) == AgeCategory.NEONATE:
            return FluidType.NS
        # Everyone else: balanced crystalloid (less hyperchloremic acidosis)
        return FluidType.RL

# Standard bedside re-check after every bolus
BOLUS_REASSESSMENT: Tuple[ReassessmentCheck, ...] = (
    ReassessmentCheck(CheckType.COMPLICATION, "New crackles on auscultation?",
                      "STOP fluids. Fluid overload: start inotrope, consider furosemide."),
    ReassessmentCheck(CheckType.COMPLICATION, "Liver edge lower than before (hepatomegaly)?",
                      "STOP fluids. Treat as cardiogenic: inotrope instead of volume."),
    ReassessmentCheck(CheckType.COMPLICATION, "Increased work of breathing or falling SpO2?",
                      "STOP fluids, support breathing, reassess for overload."),
    ReassessmentCheck(CheckType.THERAPEUTIC_ENDPOINT, "CRT now <= 2 seconds and warm peripheries?",
                      "Shock responding: hold further boluses, maintenance fluids."),
    ReassessmentCheck(CheckType.THERAPEUTIC_ENDPOINT, "Heart rate falling toward normal for age?",
                      "Shock responding: continue monitoring every 15 min."),
)

class PrescriptionEngine:
    @staticmethod
    def generate_bolus(session: Session, cautious: bool = False) -> Intervention:
        """
        One bolus, one reassessment. Volume is per kg on the dose,
        so it always renders against the current weight.
        """
        fluid = session.fluid_tracker.fluid_type.value
        if cautious:
            # Heart failure signs already present: half volume, slow
            ml_per_kg = FLUID_CONSTANTS.CAUTIOUS_BOLUS_ML_PER_KG
            action = f"CAUTIOUS FLUID BOLUS: {fluid}"
            route = "IV/IO over 20-30 min"
        else:
            ml_per_kg = FLUID_CONSTANTS.BOLUS_ML_PER_KG
            action = f"FLUID BOLUS: {fluid}"
            route = "IV/IO over 10-20 min"

        return step(
            action,
            detail="Reassess after EVERY bolus. Stop at the first sign of overload.",
            dose=make_dose(fluid, ml_per_kg, "mL", route,
                           preparation=f"{ml_per_kg:g} mL/kg, push-pull or pressure bag"),
            timer_seconds=FLUID_CONSTANTS.BOLUS_REASSESS_SECONDS,
            reassess_after="Recheck HR, CRT, BP, mental status, crackles and liver edge",
            reassessment_checks=BOLUS_REASSESSMENT,
            critical=True,
        )

# --- DEFINITIVE CARE BUNDLES ---

class DefinitiveCareProtocols:
    """
    Protocol bundles attached once a definitive diagnosis is named.
    Each bundle becomes an ordinary Threat so it flows through the same
    intervention lifecycle (and safety checks) as the primary survey.
    """

    # (keywords, threat id, name, letter)
    CATALOG = (
        (("dka", "ketoacidosis"), "protocol_dka", "DKA Management Protocol", Letter.D),
        (("sepsis", "septic"), "protocol_septic_shock", "Septic Shock Protocol", Letter.C),
        (("status epilepticus",), "protocol_status_epilepticus", "Status Epilepticus Protocol", Letter.D),
        (("anaphyla",), "protocol_anaphylaxis", "Anaphylaxis Protocol", Letter.E),
    )

    @staticmethod
    def match(diagnosis: str) -> Optional[Tuple[str, str, Letter]]:
        text = diagnosis.lower()
        for keywords, tid, name, letter in DefinitiveCareProtocols.CATALOG:
            if any(k in text for k in keywords):
                return tid, name, letter
        return None

    @staticmethod
    def interventions(threat_id: str, session: Session) -> Tuple[Intervention, ...]:
        if threat_id == "protocol_dka":
            return (
                step("CONFIRM DKA: blood gas + ketones",
                     detail="pH < 7.3 or HCO3 < 15 with ketonemia confirms DKA."),
                step("REHYDRATE OVER 48 HOURS",
                     detail="Deficit + maintenance, evenly over 48h. No further rapid boluses unless shocked."),
                step("ADD POTASSIUM (KCl) TO FLUIDS",
                     detail="KCl 40 mmol/L in the rehydration fluid once urine output confirmed and K+ < 5.5.",
                     critical=True),
                step("START INSULIN INFUSION (1 hour after fluids)",
                     dose=make_dose("Regular insulin", 0.05, "units/hr", "IV infusion",
                                    notes="0.05-0.1 units/kg/hr. No insulin bolus."),
                     critical=True),
                step("HOURLY NEURO OBS (cerebral edema watch)",
                     detail="Headache, falling HR, rising BP, falling GCS: give hypertonic saline 3% 5 mL/kg.",
                     timer_seconds=3600),
            )
        if threat_id == "protocol_septic_shock":
            return (
                step("BLOOD CULTURES + ANTIBIOTICS WITHIN 1 HOUR",
                     dose=make_dose("Ceftriaxone", 80, "mg", "IV", max_dose=4000), critical=True),
                PrescriptionEngine.generate_bolus(session),
                step("START INOTROPE IF FLUID-REFRACTORY",
                     dose=make_dose("Epinephrine infusion", 0.05, "mcg/min", "IV/IO",
                                    notes="Cold shock: epinephrine. Warm shock: norepinephrine.")),
                step("HYDROCORTISONE IF CATECHOLAMINE-RESISTANT",
                     dose=make_dose("Hydrocortisone", 2, "mg", "IV", max_dose=100)),
            )
        if threat_id == "protocol_status_epilepticus":
            return (
                step("SECOND-LINE ANTICONVULSANT",
                     dose=make_dose("Levetiracetam", 40, "mg", "IV over 5 min", max_dose=3000),
                     critical=True, timer_seconds=600),
                step("IF STILL SEIZING: PHENYTOIN",
                     dose=make_dose("Phenytoin", 20, "mg", "IV over 20 min", max_dose=1500)),
                step("RSI + ICU IF REFRACTORY",
                     detail="Seizure > 40 min despite two second-line agents."),
            )
        if threat_id == "protocol_anaphylaxis":
            return (
                step("REPEAT IM EPINEPHRINE EVERY 5 MIN IF NEEDED",
                     dose=make_dose("Epinephrine 1:1,000", 0.01, "mg", "IM", max_dose=0.5),
                     critical=True, timer_seconds=300),
                step("ANTIHISTAMINE",
                     dose=make_dose("Chlorphenamine", 0.2, "mg", "IV/IM", max_dose=10)),
                step("OBSERVE 6-12 HOURS (biphasic reaction)"),
            )
        return ()

PROTOCOL_SEVERITY = Severity.URGENT
