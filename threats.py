"""
ResusGPS: Threat Rule Set
=========================
Ordered, independent rules. Each one reads the findings map (question id ->
recorded value) plus derived session state, and when it triggers for the
first time it produces a Threat with a frozen list of interventions.

Rule order is the declared clinical order. It decides the order in which
threats created by the same answer are appended to the session.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from age_profiles import airway_position, get_age_profile, is_under_one
from dosing import make_dose
from models import (
    AgeCategory,
    Intervention,
    Letter,
    PerfusionState,
    Session,
    Severity,
    Threat,
)
from protocols import PrescriptionEngine, number_interventions, step

Findings = Dict[str, str]

@dataclass(frozen=True)
class ThreatRule:
    id: str
    name: str
    letter: Letter
    severity: Severity
    condition: Callable[[Findings, Session], bool]
    interventions: Callable[[Session], Sequence[Intervention]]
    # Question ids cited as evidence on the Threat
    finding_ids: Tuple[str, ...] = ()

# --- 1. SHARED PREDICATES ---

HEART_FAILURE_SIGNS = ("hepatomegaly", "lung_crackles", "raised_jvp")

def heart_failure_present(f: Findings) -> bool:
    return f.get("heart_failure_signs") in HEART_FAILURE_SIGNS or f.get("heart_sounds") == "gallop"

def _hyperglycemic(f: Findings) -> bool:
    return f.get("glucose") in ("high", "very_high")

def _perfusion_in(s: Session, *states: PerfusionState) -> bool:
    return s.derived_perfusion in states

def _shock_bolus(s: Session) -> Intervention:
    return PrescriptionEngine.generate_bolus(s, cautious=heart_failure_present(s.findings_map))

# --- 2. INTERVENTION GENERATORS (Session as of detection time) ---

def _catastrophic_bleed(s: Session):
    return [
        step("DIRECT PRESSURE", detail="Firm direct pressure on the wound. Pack deep wounds.", critical=True),
        step("TOURNIQUET (limb)", detail="Proximal to the wound. Note the time applied.", critical=True),
        step("TRANEXAMIC ACID", dose=make_dose("Tranexamic acid", 15, "mg", "IV over 10 min", max_dose=1000),
             detail="Within 3 hours of injury."),
        step("ACTIVATE MASSIVE TRANSFUSION", detail="O-negative blood 10 mL/kg while crossmatch pending."),
    ]

def _unresponsive_airway(s: Session):
    position = airway_position(get_age_profile(s.patient_age))
    return [
        step(f"OPEN AIRWAY: {position}", detail="Jaw thrust if trauma suspected.", critical=True),
        step("INSERT OPA (oropharyngeal airway)",
             detail="Size: incisors to angle of jaw. Only if no gag reflex.", critical=True),
        step("SUCTION", detail="Clear secretions / vomit under direct vision."),
        step("PREPARE FOR INTUBATION", detail="Unresponsive = airway not protected. Call anaesthesia."),
    ]

def _airway_obstruction(s: Session):
    position = airway_position(get_age_profile(s.patient_age))
    return [
        step(f"OPEN AIRWAY: {position}", critical=True),
        step("LOOK IN MOUTH: remove visible foreign body", detail="No blind finger sweeps.", critical=True),
        step("SUCTION + HIGH-FLOW OXYGEN", detail="15 L/min via non-rebreather."),
        step("BAG-VALVE-MASK IF NOT BREATHING", critical=True),
    ]

def _choking_ineffective(s: Session):
    if is_under_one(get_age_profile(s.patient_age)):
        thrusts = step("5 BACK BLOWS + 5 CHEST THRUSTS",
                       detail="Head down along the forearm. Two-finger chest thrusts. No abdominal thrusts under 1 year.",
                       critical=True)
    else:
        thrusts = step("5 BACK BLOWS + 5 ABDOMINAL THRUSTS",
                       detail="Alternate until the object clears or the child becomes unresponsive.",
                       critical=True)
    return [
        thrusts,
        step("IF UNRESPONSIVE: START CPR", detail="Look in the mouth before each breath.", critical=True),
    ]

def _stridor(s: Session):
    return [
        step("KEEP PATIENT CALM", detail="Position of comfort, parent at bedside. Do not examine the throat.",
             critical=True),
        step("NEBULISED EPINEPHRINE",
             dose=make_dose("Epinephrine 1:1,000", 0.5, "mL", "nebulised", max_dose=5), critical=True),
        step("DEXAMETHASONE", dose=make_dose("Dexamethasone", 0.6, "mg", "PO/IM/IV", max_dose=16)),
    ]

def _choking_effective(s: Session):
    return [
        step("ENCOURAGE COUGHING", detail="Do not intervene while the cough is effective. Watch for tiring."),
        step("MONITOR FOR DETERIORATION", timer_seconds=60,
             reassess_after="Cough still effective? If silent -> back blows and thrusts."),
    ]

def _pain_responsive_airway(s: Session):
    return [
        step("INSERT NPA (nasopharyngeal airway)",
             detail="Tolerated with a gag reflex. Avoid with suspected basal skull fracture.", critical=True),
        step("RECOVERY POSITION + SUCTION READY"),
    ]

def _airway_at_risk(s: Session):
    return [
        step("POSITION & SUCTION", detail="Recovery position if no trauma. Suction the oropharynx.", critical=True),
        step("MONITOR AIRWAY", timer_seconds=120, reassess_after="Is the airway still patent?"),
    ]

def _apnea(s: Session):
    return [
        step("BAG-VALVE-MASK VENTILATION", detail="12-20 breaths/min with visible chest rise.", critical=True),
        step("CHECK PULSE", detail="No pulse -> START CPR.", critical=True),
    ]

def _bradypnea(s: Session):
    return [
        step("ASSIST VENTILATION (BVM)", critical=True),
        step("CONSIDER OPIOID TOXICITY",
             dose=make_dose("Naloxone", 0.1, "mg", "IV/IM/IN", max_dose=2)),
    ]

def _hypoxia(s: Session):
    return [
        step("HIGH-FLOW OXYGEN", detail="15 L/min via non-rebreather. Target SpO2 >= 94%.", critical=True),
        step("ASSESS FOR TENSION PNEUMOTHORAX",
             detail="Unilateral absent breath sounds + tracheal deviation -> needle decompression."),
    ]

def _absent_breath_sounds(s: Session):
    return [
        step("NEEDLE DECOMPRESSION IF TENSION", detail="2nd intercostal space, mid-clavicular line.", critical=True),
        step("HIGH-FLOW OXYGEN", critical=True),
        step("CHEST DRAIN", detail="After decompression, or for massive effusion / haemothorax."),
    ]

def _metabolic_acidosis_breathing(s: Session):
    return [
        step("HIGH-FLOW OXYGEN", detail="This breathing pattern is compensating for acidosis.", critical=True),
        step("DO NOT SEDATE OR INTUBATE UNLESS FAILING",
             detail="Losing the respiratory compensation worsens the acidosis.", critical=True),
        step("Differential Diagnosis: find the acid",
             detail="DKA (check glucose + ketones), Sepsis (lactate, cultures), "
                    "Renal failure (urea, creatinine), Poisoning (salicylate, methanol, ethylene glycol)."),
        step("CHECK GLUCOSE, KETONES, BLOOD GAS"),
    ]

def _bronchospasm(s: Session):
    return [
        step("HIGH-FLOW OXYGEN", detail="Target SpO2 >= 94%.", critical=True),
        step("SALBUTAMOL NEBULISER",
             dose=make_dose("Salbutamol", 0.15, "mg", "nebulised", max_dose=5, frequency="Every 20 min x 3"),
             timer_seconds=1200, reassess_after="Work of breathing and SpO2 after the nebuliser"),
        step("SYSTEMIC STEROIDS", dose=make_dose("Prednisolone", 1, "mg", "PO", max_dose=60)),
    ]

def _mild_hypoxia(s: Session):
    return [step("SUPPLEMENTAL OXYGEN", detail="Nasal cannula or face mask. Target SpO2 >= 94%.")]

def _respiratory_distress(s: Session):
    return [
        step("OXYGEN + POSITION OF COMFORT", critical=True),
        step("FIND THE CAUSE", detail="Wheeze, crackles, stridor, pneumothorax, acidosis."),
        step("REASSESS WORK OF BREATHING", timer_seconds=300),
    ]

def _crackles(s: Session):
    return [
        step("OXYGEN", critical=True),
        step("CONSIDER PNEUMONIA VS PULMONARY EDEMA",
             detail="Fever favours pneumonia; hepatomegaly or gallop favours fluid overload / heart failure."),
    ]

def _cardiac_arrest(s: Session):
    return [
        step("START CPR", detail="100-120/min, 15:2 with two rescuers. Minimise interruptions.",
             critical=True, timer_seconds=120, reassess_after="Check rhythm after each 2-minute cycle"),
        step("EPINEPHRINE",
             dose=make_dose("Epinephrine 1:10,000", 0.01, "mg", "IV/IO", max_dose=1,
                            preparation="0.1 mL/kg of 1:10,000", frequency="Every 3-5 min"),
             critical=True),
        step("CHECK RHYTHM: shockable?",
             detail="VF/pVT -> defibrillate 2 J/kg then 4 J/kg. Asystole/PEA -> CPR + epinephrine.",
             critical=True),
        step("AMIODARONE (VF/pVT after 3rd shock)",
             dose=make_dose("Amiodarone", 5, "mg", "IV/IO", max_dose=300)),
        step("REVIEW Hs & Ts",
             detail="Hypovolaemia, Hypoxia, Hydrogen ion, Hypo/Hyperkalaemia, Hypothermia, "
                    "Tension pneumothorax, Tamponade, Toxins, Thrombosis."),
    ]

def _severe_bradycardia(s: Session):
    return [
        step("OXYGENATE + VENTILATE", detail="Hypoxia is the usual cause in children.", critical=True),
        step("START CPR IF HR < 60 WITH POOR PERFUSION", critical=True),
        step("EPINEPHRINE", dose=make_dose("Epinephrine 1:10,000", 0.01, "mg", "IV/IO", max_dose=1)),
        step("ATROPINE IF VAGAL", dose=make_dose("Atropine", 0.02, "mg", "IV/IO", max_dose=0.5)),
    ]

def _cold_shock(s: Session):
    return [
        step("IV/IO ACCESS", detail="IO if no IV within 90 seconds.", critical=True),
        _shock_bolus(s),
        step("CHECK GLUCOSE", detail="Shocked children are often hypoglycaemic."),
        step("EPINEPHRINE INFUSION IF FLUID-REFRACTORY",
             dose=make_dose("Epinephrine infusion", 0.05, "mcg/min", "IV/IO",
                            notes="0.05-0.3 mcg/kg/min, titrate to perfusion")),
    ]

def _hypotension(s: Session):
    return [
        step("IV/IO ACCESS", critical=True),
        _shock_bolus(s),
        step("VASOPRESSOR IF PERSISTENT",
             dose=make_dose("Norepinephrine", 0.05, "mcg/min", "IV/IO",
                            notes="0.05-0.5 mcg/kg/min")),
    ]

def _warm_shock(s: Session):
    return [
        step("IV/IO ACCESS", critical=True),
        _shock_bolus(s),
        step("NOREPINEPHRINE IF FLUID-REFRACTORY",
             dose=make_dose("Norepinephrine", 0.05, "mcg/min", "IV/IO")),
        step("ANTIBIOTICS WITHIN 1 HOUR", detail="Warm shock is septic until proven otherwise."),
    ]

def _poor_perfusion(s: Session):
    return [
        step("IV/IO ACCESS", critical=True),
        _shock_bolus(s),
        step("RECHECK CRT + HR", timer_seconds=600),
    ]

def _severe_tachycardia(s: Session):
    return [
        step("12-LEAD ECG: narrow vs broad complex", critical=True),
        step("VAGAL MANOEUVRES IF SVT", detail="Ice to face in infants. Blow through a syringe in children."),
        step("ADENOSINE IF SVT PERSISTS",
             dose=make_dose("Adenosine", 0.1, "mg", "IV rapid push + flush", max_dose=6)),
    ]

def _heart_failure(s: Session):
    return [
        step("STOP / LIMIT FLUIDS", detail="Further volume worsens pulmonary edema.", critical=True),
        step("OXYGEN + SIT UP"),
        step("CONSIDER INOTROPE",
             dose=make_dose("Dobutamine", 5, "mcg/min", "IV", notes="5-10 mcg/kg/min")),
        step("FUROSEMIDE", dose=make_dose("Furosemide", 1, "mg", "IV", max_dose=40)),
    ]

def _muffled_heart_sounds(s: Session):
    return [
        step("BEDSIDE ECHO: pericardial effusion?", critical=True),
        step("PERICARDIOCENTESIS IF TAMPONADE", detail="Subxiphoid approach, ultrasound guided."),
    ]

def _active_bleeding(s: Session):
    return [
        step("DIRECT PRESSURE", critical=True),
        step("TRANEXAMIC ACID", dose=make_dose("Tranexamic acid", 15, "mg", "IV", max_dose=1000)),
        step("CROSSMATCH + BLOOD READY"),
    ]

def _fluid_losses(s: Session):
    return [
        step("ASSESS DEHYDRATION", detail="Weight loss, CRT, skin turgor, urine output."),
        step("REPLACE LOSSES", detail="ORS if tolerated; IV deficit over 24h otherwise."),
        step("CHECK ELECTROLYTES + GLUCOSE"),
    ]

def _hypoglycemia(s: Session):
    return [
        step("DEXTROSE 10%", dose=make_dose("Dextrose 10%", 5, "mL", "IV/IO", max_dose=250),
             critical=True, timer_seconds=900, reassess_after="Recheck glucose in 15 minutes"),
        step("START MAINTENANCE WITH DEXTROSE"),
    ]

def _raised_icp(s: Session):
    return [
        step("HEAD UP 30 DEGREES, NECK MIDLINE", critical=True),
        step("HYPERTONIC SALINE 3%", dose=make_dose("Hypertonic saline 3%", 5, "mL", "IV over 15 min",
                                                     max_dose=250), critical=True),
        step("AVOID HYPOXIA AND HYPOTENSION", detail="Target SpO2 >= 94% and normal BP for age."),
        step("URGENT CT + NEUROSURGERY"),
    ]

def _active_seizure(s: Session):
    return [
        step("PROTECT + RECOVERY POSITION", critical=True),
        step("MIDAZOLAM", dose=make_dose("Midazolam", 0.15, "mg", "IV/IM/buccal", max_dose=10),
             critical=True, timer_seconds=300, reassess_after="Still seizing after 5 minutes?"),
        step("SECOND DOSE IF STILL SEIZING",
             dose=make_dose("Midazolam", 0.15, "mg", "IV/IM/buccal", max_dose=10)),
        step("PHENYTOIN IF ESTABLISHED",
             dose=make_dose("Phenytoin", 20, "mg", "IV over 20 min", max_dose=1500)),
        step("CHECK GLUCOSE"),
    ]

def _hyperglycemia(s: Session):
    return [
        step("CHECK KETONES + BLOOD GAS", critical=True, detail="Hyperglycaemia with ketosis and acidosis = DKA."),
        step("CAUTION WITH FLUIDS", detail="Rapid volume raises cerebral edema risk. 10 mL/kg aliquots only."),
        step("DO NOT START INSULIN INFUSION YET", detail="Insulin follows fluids by one hour and needs potassium."),
    ]

def _reduced_motor_response(s: Session):
    return [
        step("PROTECT AIRWAY", detail="GCS motor <= 4: consider airway adjuncts.", critical=True),
        step("CHECK GLUCOSE + PUPILS"),
        step("NEURO OBS EVERY 15 MIN", timer_seconds=900),
    ]

def _opioid_toxidrome(s: Session):
    return [
        step("NALOXONE", dose=make_dose("Naloxone", 0.1, "mg", "IV/IM/IN", max_dose=2), critical=True),
        step("SUPPORT VENTILATION"),
    ]

def _elevated_lactate(s: Session):
    return [
        step("TREAT HYPOPERFUSION", detail="Lactate >= 4 mmol/L: occult shock until proven otherwise."),
        step("REPEAT LACTATE IN 2 HOURS"),
    ]

def _anaphylaxis(s: Session):
    return [
        step("IM EPINEPHRINE", dose=make_dose("Epinephrine 1:1,000", 0.01, "mg", "IM (anterolateral thigh)",
                                              max_dose=0.5),
             critical=True, timer_seconds=300, reassess_after="Repeat after 5 minutes if no improvement"),
        step("HIGH-FLOW OXYGEN", critical=True),
        PrescriptionEngine.generate_bolus(s),
        step("REMOVE TRIGGER"),
    ]

def _purpura(s: Session):
    return [
        step("ANTIBIOTICS NOW", dose=make_dose("Ceftriaxone", 80, "mg", "IV/IO", max_dose=4000),
             critical=True, detail="Do not delay for lumbar puncture."),
        step("TREAT SHOCK", detail="Fluid and inotropes as per circulation findings."),
        step("BLOOD CULTURES + PCR"),
    ]

def _fever_infection(s: Session):
    if get_age_profile(s.patient_age).category == AgeCategory.NEONATE:
        antibiotic = step("EMPIRICAL ANTIBIOTICS",
                          dose=make_dose("Cefotaxime", 50, "mg", "IV", notes="Add ampicillin for Listeria"))
    else:
        antibiotic = step("EMPIRICAL ANTIBIOTICS",
                          dose=make_dose("Ceftriaxone", 80, "mg", "IV", max_dose=4000))
    return [
        step("SEPSIS SCREEN", detail="Cultures, lactate, glucose, FBC, CRP."),
        antibiotic,
        step("ANTIPYRETIC", dose=make_dose("Paracetamol", 15, "mg", "PO/IV", max_dose=1000)),
    ]

def _hypothermia(s: Session):
    return [
        step("ACTIVE WARMING", detail="Warm blankets, radiant heater, warm fluids.", critical=True),
        step("CHECK GLUCOSE"),
    ]

def _burns(s: Session):
    return [
        step("COOL THE BURN", detail="Cool running water 20 minutes. Avoid hypothermia."),
        step("ESTIMATE % TBSA", detail="> 10% TBSA: Parkland fluids over 24 hours."),
        step("ANALGESIA", dose=make_dose("Morphine", 0.1, "mg", "IV", max_dose=10)),
    ]

def _nai(s: Session):
    return [
        step("DOCUMENT INJURIES", detail="Size, site, colour, pattern. Photographs."),
        step("SAFEGUARDING REFERRAL", detail="Do not discharge. Inform the child protection team."),
    ]

def _poisoning(s: Session):
    return [
        step("IDENTIFY AGENT + TIME", detail="Bring containers. Call poison centre."),
        step("ACTIVATED CHARCOAL IF < 1 HOUR",
             dose=make_dose("Activated charcoal", 1, "g", "PO/NG", max_dose=50),
             detail="Only with a protected airway."),
        step("SPECIFIC ANTIDOTE", detail="Opioid: naloxone. Paracetamol: N-acetylcysteine."),
    ]

# --- 3. THE RULE TABLE (Declared Order) ---

X, A, B, C, D, E = Letter.X, Letter.A, Letter.B, Letter.C, Letter.D, Letter.E
CRIT, URG = Severity.CRITICAL, Severity.URGENT
COLD = (PerfusionState.COLD_SHOCK, PerfusionState.SEVERE_COLD_SHOCK)

def _anaphylaxis_condition(f: Findings, s: Session) -> bool:
    if f.get("other_exposure") == "allergic" or f.get("rash") == "angioedema":
        return True
    if f.get("rash") != "urticaria":
        return False
    struggling = (f.get("breathing_effort") in ("labored", "deep_labored")
                  or f.get("breathing_sounds") in ("wheezing", "stridor"))
    perfusion_poor = s.derived_perfusion not in (None, PerfusionState.NORMAL)
    return struggling or perfusion_poor

THREAT_RULES: Tuple[ThreatRule, ...] = (
    ThreatRule("catastrophic_bleed", "Catastrophic Hemorrhage", X, CRIT,
               lambda f, s: f.get("catastrophic_hemorrhage") == "yes", _catastrophic_bleed,
               ("catastrophic_hemorrhage",)),
    # A
    ThreatRule("unresponsive_airway", "Unresponsive: Airway Not Protected", A, CRIT,
               lambda f, s: f.get("avpu") == "unresponsive", _unresponsive_airway, ("avpu",)),
    ThreatRule("airway_obstruction", "Airway Obstruction", A, CRIT,
               lambda f, s: f.get("airway_status") == "obstructed", _airway_obstruction, ("airway_status",)),
    ThreatRule("choking_ineffective", "Choking: Ineffective Cough", A, CRIT,
               lambda f, s: f.get("choking") == "ineffective_cough", _choking_ineffective, ("choking",)),
    ThreatRule("stridor", "Stridor / Upper Airway Obstruction", A, CRIT,
               lambda f, s: f.get("airway_sounds") == "stridor" or f.get("breathing_sounds") == "stridor",
               _stridor, ("airway_sounds", "breathing_sounds")),
    ThreatRule("choking_effective", "Choking: Effective Cough", A, URG,
               lambda f, s: f.get("choking") == "effective_cough", _choking_effective, ("choking",)),
    ThreatRule("pain_responsive_airway", "Responds to Pain Only: Airway at Risk", A, URG,
               lambda f, s: f.get("avpu") == "pain", _pain_responsive_airway, ("avpu",)),
    ThreatRule("airway_at_risk", "Airway at Risk", A, URG,
               lambda f, s: f.get("airway_status") == "at_risk" or f.get("airway_sounds") in ("gurgling", "snoring"),
               _airway_at_risk, ("airway_status", "airway_sounds")),
    # B
    ThreatRule("apnea", "Apnea / Absent Breathing", B, CRIT,
               lambda f, s: f.get("breathing_effort") == "absent", _apnea, ("breathing_effort",)),
    ThreatRule("bradypnea", "Severe Bradypnea", B, CRIT,
               lambda f, s: f.get("respiratory_rate") == "severe_bradypnea", _bradypnea, ("respiratory_rate",)),
    ThreatRule("hypoxia", "Hypoxia", B, CRIT,
               lambda f, s: f.get("spo2") == "critical", _hypoxia, ("spo2",)),
    ThreatRule("absent_breath_sounds", "Absent Breath Sounds", B, CRIT,
               lambda f, s: f.get("breathing_sounds") == "absent", _absent_breath_sounds, ("breathing_sounds",)),
    ThreatRule("metabolic_acidosis_breathing", "Metabolic Acidosis Breathing (Kussmaul)", B, URG,
               lambda f, s: f.get("breathing_effort") == "deep_labored" or f.get("breathing_sounds") == "kussmaul",
               _metabolic_acidosis_breathing, ("breathing_effort", "breathing_sounds")),
    ThreatRule("bronchospasm", "Bronchospasm / Wheezing", B, URG,
               lambda f, s: f.get("breathing_sounds") == "wheezing", _bronchospasm, ("breathing_sounds",)),
    ThreatRule("mild_hypoxia", "Low SpO2", B, URG,
               lambda f, s: f.get("spo2") == "low", _mild_hypoxia, ("spo2",)),
    ThreatRule("respiratory_distress", "Respiratory Distress", B, URG,
               lambda f, s: (f.get("breathing_effort") == "labored"
                             or f.get("respiratory_rate") in ("tachypnea", "severe_tachypnea")),
               _respiratory_distress, ("breathing_effort", "respiratory_rate")),
    ThreatRule("crackles", "Crackles", B, URG,
               lambda f, s: f.get("breathing_sounds") == "crackles", _crackles, ("breathing_sounds",)),
    # C
    ThreatRule("cardiac_arrest", "CARDIAC ARREST: No Pulse", C, CRIT,
               lambda f, s: f.get("pulse_quality") == "absent", _cardiac_arrest, ("pulse_quality",)),
    ThreatRule("severe_bradycardia", "Severe Bradycardia", C, CRIT,
               lambda f, s: f.get("heart_rate") == "severe_bradycardia", _severe_bradycardia, ("heart_rate",)),
    ThreatRule("cold_shock", "Cold Shock", C, CRIT,
               lambda f, s: _perfusion_in(s, *COLD), _cold_shock,
               ("crt", "skin_temperature", "pulse_quality")),
    ThreatRule("hypotension", "Hypotension", C, CRIT,
               lambda f, s: f.get("blood_pressure") == "hypotension", _hypotension, ("blood_pressure",)),
    ThreatRule("warm_shock", "Warm Shock", C, URG,
               lambda f, s: _perfusion_in(s, PerfusionState.WARM_SHOCK), _warm_shock,
               ("skin_temperature", "pulse_quality", "heart_rate")),
    ThreatRule("poor_perfusion", "Poor Perfusion (Compensated)", C, URG,
               lambda f, s: _perfusion_in(s, PerfusionState.POOR_PERFUSION), _poor_perfusion, ("crt",)),
    ThreatRule("severe_tachycardia", "Severe Tachycardia", C, URG,
               lambda f, s: f.get("heart_rate") == "severe_tachycardia", _severe_tachycardia, ("heart_rate",)),
    ThreatRule("heart_failure", "Heart Failure", C, URG,
               lambda f, s: heart_failure_present(f), _heart_failure, ("heart_failure_signs", "heart_sounds")),
    ThreatRule("muffled_heart_sounds", "Muffled Heart Sounds (Tamponade?)", C, URG,
               lambda f, s: f.get("heart_sounds") == "muffled", _muffled_heart_sounds, ("heart_sounds",)),
    ThreatRule("active_bleeding", "Active Bleeding", C, URG,
               lambda f, s: f.get("bleeding") == "bleeding", _active_bleeding, ("bleeding",)),
    ThreatRule("fluid_losses", "Significant Fluid Losses", C, URG,
               lambda f, s: f.get("bleeding") == "fluid_loss", _fluid_losses, ("bleeding",)),
    # D
    ThreatRule("hypoglycemia", "Hypoglycemia", D, CRIT,
               lambda f, s: f.get("glucose") == "low", _hypoglycemia, ("glucose",)),
    ThreatRule("raised_icp", "Raised Intracranial Pressure", D, CRIT,
               lambda f, s: f.get("pupils") in ("unequal", "fixed"), _raised_icp, ("pupils",)),
    ThreatRule("active_seizure", "Active Seizure", D, CRIT,
               lambda f, s: f.get("seizure_activity") == "active", _active_seizure, ("seizure_activity",)),
    ThreatRule("hyperglycemia", "Hyperglycemia", D, URG,
               lambda f, s: _hyperglycemic(f), _hyperglycemia, ("glucose",)),
    ThreatRule("reduced_motor_response", "Reduced Motor Response (GCS M <= 4)", D, URG,
               lambda f, s: f.get("gcs_motor") in ("4", "3", "2", "1"), _reduced_motor_response, ("gcs_motor",)),
    ThreatRule("opioid_toxidrome", "Opioid Toxidrome (Pinpoint Pupils)", D, URG,
               lambda f, s: f.get("pupils") == "pinpoint", _opioid_toxidrome, ("pupils",)),
    ThreatRule("elevated_lactate", "Elevated Lactate", D, URG,
               lambda f, s: f.get("lactate") == "high", _elevated_lactate, ("lactate",)),
    # E
    ThreatRule("anaphylaxis", "Anaphylaxis", E, CRIT, _anaphylaxis_condition, _anaphylaxis,
               ("other_exposure", "rash")),
    ThreatRule("purpura", "Purpura / Petechiae (Meningococcal?)", E, CRIT,
               lambda f, s: f.get("rash") == "petechiae", _purpura, ("rash",)),
    ThreatRule("fever_infection", "Fever: Possible Serious Infection", E, URG,
               lambda f, s: f.get("temperature") in ("fever", "high_fever"), _fever_infection, ("temperature",)),
    ThreatRule("hypothermia", "Hypothermia", E, URG,
               lambda f, s: f.get("temperature") == "hypothermia", _hypothermia, ("temperature",)),
    ThreatRule("burns", "Burns", E, URG,
               lambda f, s: f.get("rash") == "burns", _burns, ("rash",)),
    ThreatRule("nai", "Suspected Non-Accidental Injury", E, URG,
               lambda f, s: f.get("rash") == "nai_bruising" or f.get("other_exposure") == "nai", _nai,
               ("rash", "other_exposure")),
    ThreatRule("poisoning", "Suspected Poisoning", E, URG,
               lambda f, s: f.get("other_exposure") == "poisoning", _poisoning, ("other_exposure",)),
)

RULES_BY_ID: Dict[str, ThreatRule] = {rule.id: rule for rule in THREAT_RULES}

# --- 4. DETECTION ---

class ThreatDetector:
    @staticmethod
    def materialize(rule: ThreatRule, session: Session) -> Threat:
        recorded = session.findings_map
        return Threat(
            id=rule.id,
            letter=rule.letter,
            name=rule.name,
            severity=rule.severity,
            interventions=number_interventions(rule.id, rule.interventions(session)),
            finding_ids=tuple(fid for fid in rule.finding_ids if fid in recorded),
        )

    @staticmethod
    def detect_new(session: Session) -> List[Threat]:
        """
        Every rule that triggers now and has never fired before, in declared
        order. The caller decides what the batch means for the phase.
        """
        findings = session.findings_map
        existing = session.threat_ids
        fired = []
        for rule in THREAT_RULES:
            if rule.id in existing:
                continue
            if rule.condition(findings, session):
                fired.append(ThreatDetector.materialize(rule, session))
        return fired
