"""
ResusGPS: Data Dictionary for the XABCDE Session
================================================
This module defines the entire state space of a resuscitation session.
It includes the Catalog shapes (Questions), the Clinical Records
(Findings, Threats, Interventions) and the root Session aggregate.

NO LOGIC is implemented here beyond small derived read models.
Every record is frozen: transitions build new values with `replace`.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from constants import FluidType

# --- 1. ENUMS (Standardizing the Vocabulary) ---

class Phase(Enum):
    IDLE = "IDLE"
    QUICK_ASSESSMENT = "QUICK_ASSESSMENT"
    PRIMARY_SURVEY = "PRIMARY_SURVEY"
    INTERVENTION = "INTERVENTION"
    SECONDARY_SURVEY = "SECONDARY_SURVEY"
    DEFINITIVE_CARE = "DEFINITIVE_CARE"
    ONGOING = "ONGOING"                 # Post-ROSC monitoring
    CARDIAC_ARREST = "CARDIAC_ARREST"   # Interrupt, reachable from any phase

class Letter(Enum):
    X = "X"  # eXsanguination
    A = "A"  # Airway
    B = "B"  # Breathing
    C = "C"  # Circulation
    D = "D"  # Disability
    E = "E"  # Exposure

TRAUMA_ORDER = (Letter.X, Letter.A, Letter.B, Letter.C, Letter.D, Letter.E)
MEDICAL_ORDER = (Letter.A, Letter.B, Letter.C, Letter.D, Letter.E)
LETTER_RANK = {letter: i for i, letter in enumerate(TRAUMA_ORDER)}

class Severity(Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    MONITOR = "monitor"

SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.URGENT: 1, Severity.MONITOR: 2}

class AgeCategory(Enum):
    NEONATE = "neonate"        # < 28 days
    INFANT = "infant"          # 28 days - 12 months
    CHILD = "child"            # 1 - 11 years
    ADOLESCENT = "adolescent"  # 12 - 17 years
    ADULT = "adult"

class InputType(Enum):
    SELECT = "select"
    NUMBER = "number"
    NUMBER_PAIR = "number_pair"

class InterventionStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"  # Declared terminal, no transition reaches it yet

class CheckType(Enum):
    COMPLICATION = "complication"
    THERAPEUTIC_ENDPOINT = "therapeutic_endpoint"

class AlertSeverity(Enum):
    WARNING = "warning"
    DANGER = "danger"

class PerfusionState(Enum):
    NORMAL = "normal"
    POOR_PERFUSION = "poor_perfusion"        # Delayed CRT, compensated
    COLD_SHOCK = "cold_shock"
    SEVERE_COLD_SHOCK = "severe_cold_shock"
    WARM_SHOCK = "warm_shock"

class EventType(Enum):
    PHASE_CHANGE = "phase_change"
    FINDING = "finding"
    THREAT_IDENTIFIED = "threat_identified"
    INTERVENTION_STARTED = "intervention_started"
    INTERVENTION_COMPLETED = "intervention_completed"
    SAFETY_ALERT = "safety_alert"
    SAFETY_ALERT_ACKNOWLEDGED = "safety_alert_acknowledged"
    DIAGNOSIS = "diagnosis"
    NOTE = "note"
    CARDIAC_ARREST_START = "cardiac_arrest_start"
    ROSC = "rosc"
    PATIENT_INFO_UPDATED = "patient_info_updated"

class Confidence(Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"

CONFIDENCE_RANK = {Confidence.HIGH: 0, Confidence.MODERATE: 1, Confidence.LOW: 2}

class Outcome(Enum):
    """What a transition actually did."""
    APPLIED = "applied"
    NOT_FOUND = "not_found"   # Unknown intervention / alert id
    NO_CHANGE = "no_change"   # Valid id, nothing to do (already answered, already completed...)
    INVALID = "invalid"       # Input the catalog cannot accept (missing number, unknown field...)

# --- 2. CATALOG LAYER (What the Clinician is Asked) ---

@dataclass(frozen=True)
class AgeProfile:
    category: AgeCategory
    years: Optional[float] = None  # None when the age text had no number

@dataclass(frozen=True)
class Interpretation:
    """Meaning of a raw numeric answer for THIS patient's age."""
    category: str                      # e.g. 'severe_bradycardia', stored as Finding.value
    label: str                         # e.g. '40 bpm: SEVERE BRADYCARDIA'
    severity: Optional[Severity] = None  # None = within normal range

@dataclass(frozen=True)
class QuestionOption:
    label: str
    value: str
    severity: Optional[Severity] = None

@dataclass(frozen=True)
class NumberConfig:
    unit: str
    min: float
    max: float
    interpret: Callable[[float, Optional[float], AgeProfile], Interpretation]
    step: float = 1.0

@dataclass(frozen=True)
class NumberPairConfig:
    labels: Tuple[str, str]   # e.g. ('Systolic', 'Diastolic')
    unit: str
    min: float
    max: float
    interpret: Callable[[float, Optional[float], AgeProfile], Interpretation]

@dataclass(frozen=True)
class AssessmentQuestion:
    id: str
    letter: Letter
    text: str
    input_type: InputType = InputType.SELECT
    options: Tuple[QuestionOption, ...] = ()
    number_config: Optional[NumberConfig] = None
    number_pair_config: Optional[NumberPairConfig] = None

    def option_for(self, value: str) -> Optional[QuestionOption]:
        for option in self.options:
            if option.value == value:
                return option
        return None

# --- 3. CLINICAL RECORDS (What Happened at the Bedside) ---

@dataclass(frozen=True)
class DoseInfo:
    drug: str            # Never empty: the dose string always names the drug
    dose_per_kg: float
    unit: str
    route: str
    max_dose: Optional[float] = None
    preparation: Optional[str] = None
    frequency: Optional[str] = None
    notes: Optional[str] = None

@dataclass(frozen=True)
class ReassessmentCheck:
    type: CheckType
    prompt: str             # e.g. 'New crackles on auscultation?'
    action_if_present: str  # e.g. 'STOP fluids, start inotrope'

@dataclass(frozen=True)
class Intervention:
    id: str
    action: str
    detail: Optional[str] = None
    dose: Optional[DoseInfo] = None
    timer_seconds: Optional[int] = None  # Scheduling belongs to the caller
    reassess_after: Optional[str] = None
    reassessment_checks: Tuple[ReassessmentCheck, ...] = ()
    critical: bool = False
    status: InterventionStatus = InterventionStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status in (InterventionStatus.PENDING, InterventionStatus.IN_PROGRESS)

@dataclass(frozen=True)
class Finding:
    id: str                 # Question id, one Finding per id per session
    letter: Letter
    value: str              # Choice value, or interpreted category for numeric answers
    description: str        # Human label shown in the record
    timestamp: datetime
    severity: Optional[Severity] = None
    numeric_value: Optional[float] = None
    numeric_value2: Optional[float] = None
    unit: Optional[str] = None

@dataclass(frozen=True)
class Threat:
    id: str                 # Rule id, at most one Threat per rule per session
    letter: Letter
    name: str
    severity: Severity
    interventions: Tuple[Intervention, ...] = ()
    resolved: bool = False  # Write-only: nothing resolves a threat automatically
    finding_ids: Tuple[str, ...] = ()

@dataclass(frozen=True)
class SafetyAlert:
    id: str                 # Safety rule id
    message: str
    severity: AlertSeverity
    timestamp: datetime
    acknowledged: bool = False

@dataclass(frozen=True)
class SampleHistory:
    signs: Optional[str] = None
    allergies: Optional[str] = None
    medications: Optional[str] = None
    past_history: Optional[str] = None
    last_meal: Optional[str] = None
    events: Optional[str] = None

SAMPLE_FIELDS = ("signs", "allergies", "medications", "past_history", "last_meal", "events")

@dataclass(frozen=True)
class ClinicalEvent:
    timestamp: datetime
    type: EventType
    detail: str
    letter: Optional[Letter] = None

# --- 4. DERIVED BOOKKEEPING ---

@dataclass(frozen=True)
class FluidTracker:
    fluid_type: FluidType = FluidType.RL
    bolus_count: int = 0
    total_volume_ml: float = 0.0
    total_volume_per_kg: float = 0.0
    is_fluid_refractory: bool = False

@dataclass(frozen=True)
class VitalSigns:
    """Objective numbers, as measured. Interpretation lives on the Finding."""
    hr: Optional[float] = None           # bpm
    rr: Optional[float] = None           # breaths/min
    spo2: Optional[float] = None         # %
    crt: Optional[float] = None          # seconds
    sbp: Optional[float] = None          # mmHg
    dbp: Optional[float] = None          # mmHg
    temperature: Optional[float] = None  # Celsius
    glucose: Optional[float] = None      # mmol/L
    glucose_mg_dl: Optional[float] = None
    lactate: Optional[float] = None      # mmol/L

# --- 5. ROOT AGGREGATE ---

@dataclass(frozen=True)
class Session:
    start_time: datetime
    phase: Phase = Phase.IDLE
    current_letter: Letter = Letter.A
    quick_assessment: Optional[str] = None  # 'sick' | 'not_sick'
    findings: Tuple[Finding, ...] = ()
    threats: Tuple[Threat, ...] = ()
    safety_alerts: Tuple[SafetyAlert, ...] = ()
    sample_history: SampleHistory = field(default_factory=SampleHistory)
    definitive_diagnosis: Optional[str] = None
    patient_weight: Optional[float] = None  # kg
    patient_age: Optional[str] = None       # Free text, e.g. '5 years'
    is_trauma: bool = False
    events: Tuple[ClinicalEvent, ...] = ()
    fluid_tracker: FluidTracker = field(default_factory=FluidTracker)
    vital_signs: VitalSigns = field(default_factory=VitalSigns)
    derived_perfusion: Optional[PerfusionState] = None
    insulin_running: bool = False
    potassium_added: bool = False

    # Read models over the append-only records
    @property
    def findings_map(self) -> Dict[str, str]:
        return {f.id: f.value for f in self.findings}

    @property
    def threat_ids(self) -> FrozenSet[str]:
        return frozenset(t.id for t in self.threats)

    @property
    def bolus_count(self) -> int:
        return self.fluid_tracker.bolus_count

    @property
    def survey_order(self) -> Tuple[Letter, ...]:
        return TRAUMA_ORDER if self.is_trauma else MEDICAL_ORDER

@dataclass(frozen=True)
class Transition:
    """Result of every engine operation: the new session plus what it logged."""
    session: Session
    events: Tuple[ClinicalEvent, ...] = ()
    outcome: Outcome = Outcome.APPLIED

@dataclass(frozen=True)
class DiagnosisSuggestion:
    diagnosis: str
    confidence: Confidence
    supporting_findings: Tuple[str, ...]
    protocol: str
    differentials: Tuple[str, ...] = ()
