"""
ResusGPS: Primary Survey Question Catalog
=========================================
Each letter has focused questions. The provider reports what they FIND;
the threat rules decide what it MEANS.

Numeric questions carry an age-aware interpreter that turns the raw number
into a category (stored on the Finding) and a severity.
"""

from typing import Dict, Optional, Tuple

from age_profiles import get_vital_ranges
from constants import (
    CRT_CONSTANTS,
    GLUCOSE_CONSTANTS,
    LACTATE_CONSTANTS,
    SPO2_CONSTANTS,
    TEMPERATURE_CONSTANTS,
)
from models import (
    AgeProfile,
    AssessmentQuestion,
    InputType,
    Interpretation,
    Letter,
    NumberConfig,
    NumberPairConfig,
    QuestionOption,
    Severity,
)

CRITICAL, URGENT, MONITOR = Severity.CRITICAL, Severity.URGENT, Severity.MONITOR

# --- 1. INTERPRETERS (Raw Number -> Clinical Meaning) ---

def interpret_heart_rate(value: float, _value2: Optional[float], profile: AgeProfile) -> Interpretation:
    ranges = get_vital_ranges(profile)
    if value < ranges.hr_severe_low:
        return Interpretation("severe_bradycardia", f"{value:g} bpm: SEVERE BRADYCARDIA", CRITICAL)
    if value < ranges.hr_low:
        return Interpretation("bradycardia", f"{value:g} bpm: bradycardia", URGENT)
    if value > ranges.hr_severe_high:
        return Interpretation("severe_tachycardia", f"{value:g} bpm: SEVERE TACHYCARDIA (consider SVT)", URGENT)
    if value > ranges.hr_high:
        return Interpretation("tachycardia", f"{value:g} bpm: tachycardia", MONITOR)
    return Interpretation("normal", f"{value:g} bpm: normal for age")

def interpret_respiratory_rate(value: float, _value2: Optional[float], profile: AgeProfile) -> Interpretation:
    ranges = get_vital_ranges(profile)
    if value < ranges.rr_low / 2:
        return Interpretation("severe_bradypnea", f"{value:g}/min: SEVERE BRADYPNEA", CRITICAL)
    if value < ranges.rr_low:
        return Interpretation("bradypnea", f"{value:g}/min: slow for age", MONITOR)
    if value > ranges.rr_high * 1.5:
        return Interpretation("severe_tachypnea", f"{value:g}/min: SEVERE TACHYPNEA", URGENT)
    if value > ranges.rr_high:
        return Interpretation("tachypnea", f"{value:g}/min: tachypnea", URGENT)
    return Interpretation("normal", f"{value:g}/min: normal for age")

def interpret_spo2(value: float, _value2: Optional[float], _profile: AgeProfile) -> Interpretation:
    if value < SPO2_CONSTANTS.CRITICAL:
        return Interpretation("critical", f"{value:g}%: HYPOXIA", CRITICAL)
    if value < SPO2_CONSTANTS.TARGET:
        return Interpretation("low", f"{value:g}%: below target", URGENT)
    return Interpretation("normal", f"{value:g}%")

def interpret_crt(value: float, _value2: Optional[float], _profile: AgeProfile) -> Interpretation:
    if value > CRT_CONSTANTS.DELAYED_MAX_SEC:
        return Interpretation("very_delayed", f"CRT {value:g}s: VERY DELAYED", CRITICAL)
    if value > CRT_CONSTANTS.NORMAL_MAX_SEC:
        return Interpretation("delayed", f"CRT {value:g}s: delayed", URGENT)
    return Interpretation("normal", f"CRT {value:g}s: normal")

def interpret_blood_pressure(systolic: float, diastolic: Optional[float], profile: AgeProfile) -> Interpretation:
    ranges = get_vital_ranges(profile)
    reading = f"{systolic:g}/{diastolic:g} mmHg" if diastolic is not None else f"{systolic:g} mmHg systolic"
    if systolic < ranges.sbp_min:
        return Interpretation("hypotension", f"{reading}: HYPOTENSION (min {ranges.sbp_min})", CRITICAL)
    return Interpretation("normal", f"{reading}")

def interpret_glucose(value: float, _value2: Optional[float], _profile: AgeProfile) -> Interpretation:
    mg_dl = round(value * GLUCOSE_CONSTANTS.MGDL_PER_MMOL)
    reading = f"{value:g} mmol/L ({mg_dl} mg/dL)"
    if value < GLUCOSE_CONSTANTS.LOW_MMOL:
        return Interpretation("low", f"{reading}: HYPOGLYCEMIA", CRITICAL)
    if value > GLUCOSE_CONSTANTS.HIGH_MAX_MMOL:
        return Interpretation("very_high", f"{reading}: VERY HIGH", CRITICAL)
    if value > GLUCOSE_CONSTANTS.ELEVATED_MAX_MMOL:
        return Interpretation("high", f"{reading}: HIGH", URGENT)
    if value > GLUCOSE_CONSTANTS.NORMAL_MAX_MMOL:
        return Interpretation("elevated", f"{reading}: elevated", MONITOR)
    return Interpretation("normal", reading)

def interpret_lactate(value: float, _value2: Optional[float], _profile: AgeProfile) -> Interpretation:
    if value >= LACTATE_CONSTANTS.HIGH:
        return Interpretation("high", f"{value:g} mmol/L: HIGH (hypoperfusion)", URGENT)
    if value > LACTATE_CONSTANTS.NORMAL_MAX:
        return Interpretation("raised", f"{value:g} mmol/L: raised", MONITOR)
    return Interpretation("normal", f"{value:g} mmol/L")

def interpret_temperature(value: float, _value2: Optional[float], _profile: AgeProfile) -> Interpretation:
    if value < TEMPERATURE_CONSTANTS.HYPOTHERMIA_C:
        return Interpretation("hypothermia", f"{value:g}°C: HYPOTHERMIA", URGENT)
    if value >= TEMPERATURE_CONSTANTS.HIGH_FEVER_C:
        return Interpretation("high_fever", f"{value:g}°C: HIGH FEVER", URGENT)
    if value >= TEMPERATURE_CONSTANTS.FEVER_C:
        return Interpretation("fever", f"{value:g}°C: fever", URGENT)
    return Interpretation("normal", f"{value:g}°C")

# --- 2. BUILDERS ---

def _select(qid: str, letter: Letter, text: str, *options: Tuple) -> AssessmentQuestion:
    return AssessmentQuestion(
        id=qid, letter=letter, text=text, input_type=InputType.SELECT,
        options=tuple(QuestionOption(*o) for o in options),
    )

def _number(qid: str, letter: Letter, text: str, unit: str, lo: float, hi: float,
            interpret, step: float = 1.0) -> AssessmentQuestion:
    return AssessmentQuestion(
        id=qid, letter=letter, text=text, input_type=InputType.NUMBER,
        number_config=NumberConfig(unit=unit, min=lo, max=hi, interpret=interpret, step=step),
    )

# --- 3. THE CATALOG (Order matters: this is the order the provider is asked) ---

X, A, B, C, D, E = Letter.X, Letter.A, Letter.B, Letter.C, Letter.D, Letter.E

PRIMARY_SURVEY_QUESTIONS: Dict[Letter, Tuple[AssessmentQuestion, ...]] = {
    X: (
        _select("catastrophic_hemorrhage", X, "Is there catastrophic / life-threatening external bleeding?",
                ("YES: Massive bleeding", "yes", CRITICAL),
                ("NO", "no")),
    ),
    A: (
        # AVPU first: an unresponsive child cannot protect their own airway
        _select("avpu", A, "Level of consciousness (AVPU)?",
                ("A: Alert", "alert"),
                ("V: Responds to Voice", "voice", MONITOR),
                ("P: Responds to Pain", "pain", URGENT),
                ("U: Unresponsive", "unresponsive", CRITICAL)),
        _select("airway_status", A, "Airway status?",
                ("PATENT: Speaking / Crying", "patent"),
                ("AT RISK: Vomiting / Secretions", "at_risk", URGENT),
                ("OBSTRUCTED: No air movement", "obstructed", CRITICAL)),
        _select("choking", A, "Choking / foreign body?",
                ("NO", "no"),
                ("YES: Effective cough", "effective_cough", URGENT),
                ("YES: Ineffective / silent cough", "ineffective_cough", CRITICAL)),
        _select("airway_sounds", A, "Airway sounds?",
                ("CLEAR", "clear"),
                ("STRIDOR", "stridor", CRITICAL),
                ("GURGLING", "gurgling", URGENT),
                ("SNORING", "snoring", URGENT)),
    ),
    B: (
        _select("breathing_effort", B, "Breathing effort?",
                ("NORMAL", "normal"),
                ("LABORED: Retractions / Accessory muscles", "labored", URGENT),
                ("DEEP & LABORED (acidotic pattern)", "deep_labored", URGENT),
                ("ABSENT / AGONAL", "absent", CRITICAL)),
        _number("respiratory_rate", B, "Respiratory rate (breaths/min)?", "/min", 0, 120,
                interpret_respiratory_rate),
        _number("spo2", B, "SpO2 reading (%)?", "%", 50, 100, interpret_spo2),
        _select("breathing_sounds", B, "What do you hear?",
                ("CLEAR", "clear"),
                ("WHEEZING", "wheezing", URGENT),
                ("CRACKLES / RALES", "crackles", URGENT),
                ("STRIDOR", "stridor", CRITICAL),
                ("ABSENT BREATH SOUNDS", "absent", CRITICAL),
                ("DEEP & LABORED (Kussmaul)", "kussmaul", URGENT)),
    ),
    C: (
        _select("pulse_quality", C, "Pulse quality?",
                ("STRONG & REGULAR", "strong"),
                ("WEAK / THREADY", "weak", URGENT),
                ("BOUNDING", "bounding", URGENT),
                ("ABSENT", "absent", CRITICAL)),
        _number("heart_rate", C, "Heart rate (bpm)?", "bpm", 0, 300, interpret_heart_rate),
        _number("crt", C, "Capillary refill time (seconds)?", "s", 0, 15, interpret_crt, step=0.5),
        _select("skin_temperature", C, "Skin temperature?",
                ("WARM", "warm"),
                ("COOL PERIPHERIES", "cool", URGENT),
                ("COLD / MOTTLED", "cold", CRITICAL),
                ("WARM & FLUSHED", "warm_flushed", URGENT)),
        AssessmentQuestion(
            id="blood_pressure", letter=C, text="Blood pressure (mmHg)?",
            input_type=InputType.NUMBER_PAIR,
            number_pair_config=NumberPairConfig(labels=("Systolic", "Diastolic"), unit="mmHg",
                                                min=20, max=250, interpret=interpret_blood_pressure),
        ),
        _select("heart_sounds", C, "Heart sounds?",
                ("NORMAL", "normal"),
                ("MURMUR", "murmur", MONITOR),
                ("GALLOP RHYTHM", "gallop", URGENT),
                ("MUFFLED", "muffled", URGENT)),
        _select("bleeding", C, "Any ongoing bleeding or fluid loss?",
                ("NO", "no"),
                ("YES: Active bleeding", "bleeding", URGENT),
                ("YES: Significant fluid loss (vomiting/diarrhea)", "fluid_loss", URGENT)),
        _select("heart_failure_signs", C, "Signs of heart failure?",
                ("NONE", "none"),
                ("HEPATOMEGALY", "hepatomegaly", URGENT),
                ("BASAL CRACKLES", "lung_crackles", URGENT),
                ("RAISED JVP / EDEMA", "raised_jvp", URGENT)),
    ),
    D: (
        _select("gcs_motor", D, "GCS motor response?",
                ("6: Obeys commands", "6"),
                ("5: Localises pain", "5", MONITOR),
                ("4: Withdraws from pain", "4", URGENT),
                ("3: Abnormal flexion", "3", CRITICAL),
                ("2: Extension", "2", CRITICAL),
                ("1: None", "1", CRITICAL)),
        _number("glucose", D, "Blood glucose (mmol/L)?", "mmol/L", 0.5, 60, interpret_glucose, step=0.1),
        _select("pupils", D, "Pupils?",
                ("EQUAL & REACTIVE", "normal"),
                ("UNEQUAL", "unequal", CRITICAL),
                ("FIXED & DILATED", "fixed", CRITICAL),
                ("PINPOINT", "pinpoint", URGENT)),
        _select("seizure_activity", D, "Seizure activity?",
                ("NO", "no"),
                ("YES: Currently seizing", "active", CRITICAL),
                ("POST-ICTAL", "postictal", URGENT)),
        _number("lactate", D, "Lactate (mmol/L)?", "mmol/L", 0, 30, interpret_lactate, step=0.1),
    ),
    E: (
        _number("temperature", E, "Temperature (°C)?", "°C", 25, 45, interpret_temperature, step=0.1),
        _select("rash", E, "Skin findings?",
                ("NONE", "none"),
                ("URTICARIA / HIVES", "urticaria", URGENT),
                ("PETECHIAE / PURPURA", "petechiae", CRITICAL),
                ("SWELLING / ANGIOEDEMA", "angioedema", CRITICAL),
                ("BURNS", "burns", URGENT),
                ("BRUISING (suspicious pattern)", "nai_bruising", URGENT)),
        _select("other_exposure", E, "Any other findings?",
                ("NONE", "none"),
                ("SUSPECTED INGESTION / POISONING", "poisoning", URGENT),
                ("SIGNS OF ABUSE / NAI", "nai", URGENT),
                ("ALLERGIC REACTION SIGNS", "allergic", CRITICAL)),
    ),
}

_BY_ID: Dict[str, AssessmentQuestion] = {
    q.id: q for questions in PRIMARY_SURVEY_QUESTIONS.values() for q in questions
}

def get_question(question_id: str) -> Optional[AssessmentQuestion]:
    return _BY_ID.get(question_id)

def questions_for(letter: Letter) -> Tuple[AssessmentQuestion, ...]:
    return PRIMARY_SURVEY_QUESTIONS.get(letter, ())

def validate_numeric(question: AssessmentQuestion, value: Optional[float],
                     value2: Optional[float] = None) -> None:
    """Raises ValueError when a numeric answer is outside the catalog range."""
    config = question.number_config or question.number_pair_config
    if config is None:
        return
    if value is None:
        raise ValueError(f"{question.id} needs a numeric value ({config.unit})")
    for v in (value, value2):
        if v is not None and not (config.min <= v <= config.max):
            raise ValueError(f"{question.id}: {v:g} {config.unit} is outside {config.min:g}-{config.max:g}")
