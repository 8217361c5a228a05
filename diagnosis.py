"""
ResusGPS: Diagnosis Suggestions
===============================
Pattern matching over the recorded findings. This never decides anything:
it proposes candidates with a confidence and the differentials that must
still be excluded, and the clinician names the definitive diagnosis.
"""

from typing import List

from models import CONFIDENCE_RANK, Confidence, DiagnosisSuggestion, PerfusionState, Session
from threats import heart_failure_present

ACIDOSIS_DIFFERENTIALS = (
    "Sepsis with lactic acidosis",
    "Renal failure",
    "Poisoning (salicylate, methanol, ethylene glycol)",
    "Inborn error of metabolism",
)

SHOCK_STATES = (
    PerfusionState.POOR_PERFUSION,
    PerfusionState.COLD_SHOCK,
    PerfusionState.SEVERE_COLD_SHOCK,
    PerfusionState.WARM_SHOCK,
)

def _in_shock(session: Session) -> bool:
    return (session.derived_perfusion in SHOCK_STATES
            or session.findings_map.get("blood_pressure") == "hypotension")

def get_suggested_diagnoses(session: Session) -> List[DiagnosisSuggestion]:
    f = session.findings_map
    shock = _in_shock(session)
    febrile = f.get("temperature") in ("fever", "high_fever")
    hyperglycemic = f.get("glucose") in ("high", "very_high")
    acidotic_breathing = f.get("breathing_sounds") == "kussmaul" or f.get("breathing_effort") == "deep_labored"
    suggestions: List[DiagnosisSuggestion] = []

    # 1. DKA vs other causes of metabolic acidosis
    if hyperglycemic and acidotic_breathing:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Diabetic Ketoacidosis (DKA)",
            confidence=Confidence.HIGH,
            supporting_findings=("Hyperglycemia", "Acidotic (Kussmaul) breathing") + (("Shock",) if shock else ()),
            protocol="Confirm with ketones + blood gas. DKA protocol: fluids over 48h, "
                     "insulin infusion after 1 hour with potassium, cerebral edema watch.",
            differentials=ACIDOSIS_DIFFERENTIALS,
        ))
    elif hyperglycemic:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Diabetic Ketoacidosis (DKA)",
            confidence=Confidence.MODERATE,
            supporting_findings=("Hyperglycemia",),
            protocol="Check ketones and blood gas to confirm before starting the DKA protocol.",
            differentials=("Stress hyperglycemia", "Hyperosmolar hyperglycemic state"),
        ))
    elif acidotic_breathing:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Metabolic Acidosis (cause unknown)",
            confidence=Confidence.LOW,
            supporting_findings=("Acidotic (Kussmaul) breathing",),
            protocol="Blood gas, lactate, glucose, ketones, urea/creatinine, toxicology screen.",
            differentials=("DKA",) + ACIDOSIS_DIFFERENTIALS,
        ))

    # 2. Sepsis
    if febrile and shock:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Sepsis / Septic Shock",
            confidence=Confidence.HIGH,
            supporting_findings=("Fever", "Shock") + (("Petechiae/Purpura",) if f.get("rash") == "petechiae" else ()),
            protocol="Sepsis bundle: cultures, antibiotics within 1 hour, fluid boluses, inotrope if refractory.",
        ))
    elif febrile and f.get("heart_rate") in ("tachycardia", "severe_tachycardia"):
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Sepsis (possible)",
            confidence=Confidence.MODERATE,
            supporting_findings=("Fever", "Tachycardia"),
            protocol="Sepsis screen: lactate, cultures. Treat early if perfusion worsens.",
        ))

    # 3. Anaphylaxis
    urticaria = f.get("rash") == "urticaria"
    respiratory = f.get("breathing_effort") == "labored" or f.get("breathing_sounds") == "wheezing"
    if f.get("rash") == "angioedema" or f.get("other_exposure") == "allergic" or (urticaria and (respiratory or shock)):
        supporting = tuple(label for label, present in (
            ("Urticaria", urticaria),
            ("Angioedema", f.get("rash") == "angioedema"),
            ("Allergic reaction", f.get("other_exposure") == "allergic"),
            ("Respiratory involvement", respiratory),
            ("Shock", shock),
        ) if present)
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Anaphylaxis",
            confidence=Confidence.HIGH,
            supporting_findings=supporting,
            protocol="IM epinephrine, oxygen, fluid bolus, remove trigger. Observe for biphasic reaction.",
        ))

    # 4. Meningococcal disease
    if febrile and f.get("rash") == "petechiae":
        reduced = f.get("avpu") in ("pain", "unresponsive")
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Meningococcal Disease",
            confidence=Confidence.HIGH if reduced or shock else Confidence.MODERATE,
            supporting_findings=("Fever", "Petechiae/Purpura") + (("Reduced consciousness",) if reduced else ()),
            protocol="Immediate ceftriaxone. Treat shock. LP only when stable.",
        ))

    # 5. Status epilepticus
    if f.get("seizure_activity") == "active":
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Status Epilepticus",
            confidence=Confidence.MODERATE,
            supporting_findings=("Active seizure",),
            protocol="Benzodiazepine x2, then second-line agent, RSI if refractory.",
            differentials=("Hypoglycemia", "Meningitis / encephalitis", "Raised ICP"),
        ))

    # 6. Tension pneumothorax
    if f.get("breathing_sounds") == "absent" and shock:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Tension Pneumothorax",
            confidence=Confidence.MODERATE,
            supporting_findings=("Absent breath sounds", "Shock"),
            protocol="Needle decompression, then chest drain.",
        ))

    # 7. Shock phenotypes
    if f.get("bleeding") == "bleeding" or f.get("catastrophic_hemorrhage") == "yes":
        if shock:
            suggestions.append(DiagnosisSuggestion(
                diagnosis="Hemorrhagic Shock",
                confidence=Confidence.HIGH,
                supporting_findings=("Bleeding", "Shock"),
                protocol="Stop the bleeding, tranexamic acid, blood 10 mL/kg, massive transfusion protocol.",
            ))
    elif f.get("bleeding") == "fluid_loss" and shock:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Hypovolemic Shock",
            confidence=Confidence.HIGH,
            supporting_findings=("Fluid losses", "Shock"),
            protocol="10 mL/kg boluses with reassessment, then replace the deficit.",
        ))
    if heart_failure_present(f) and shock:
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Cardiogenic Shock",
            confidence=Confidence.MODERATE,
            supporting_findings=("Heart failure signs", "Shock"),
            protocol="Limit fluids, inotrope, echocardiography.",
            differentials=("Myocarditis", "Congenital heart disease", "Arrhythmia"),
        ))

    # 8. Opioid toxicity
    if f.get("pupils") == "pinpoint" and (f.get("respiratory_rate") in ("bradypnea", "severe_bradypnea")
                                          or f.get("avpu") in ("voice", "pain", "unresponsive")):
        suggestions.append(DiagnosisSuggestion(
            diagnosis="Opioid Toxicity",
            confidence=Confidence.MODERATE,
            supporting_findings=("Pinpoint pupils", "Depressed breathing or consciousness"),
            protocol="Naloxone, support ventilation, observe for re-sedation.",
        ))

    # Stable sort keeps the clinical order within a confidence level
    return sorted(suggestions, key=lambda d: CONFIDENCE_RANK[d.confidence])
