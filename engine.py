"""
ResusGPS: XABCDE Session State Machine
======================================
IDLE -> QUICK_ASSESSMENT -> PRIMARY_SURVEY <-> INTERVENTION
     -> SECONDARY_SURVEY -> DEFINITIVE_CARE
CARDIAC_ARREST can interrupt any phase; ROSC leads to ONGOING.

Every operation takes a Session and returns a Transition:
the new Session, the events it logged and what actually happened.
The engine keeps no state of its own apart from the injected clock.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from age_profiles import get_age_profile
from constants import CRT_CONSTANTS, GLUCOSE_CONSTANTS
from diagnosis import get_suggested_diagnoses
from dosing import record_bolus, recompute_for_patient
from models import (
    LETTER_RANK,
    SAMPLE_FIELDS,
    SEVERITY_RANK,
    AssessmentQuestion,
    ClinicalEvent,
    DiagnosisSuggestion,
    EventType,
    Finding,
    InputType,
    Intervention,
    InterventionStatus,
    Letter,
    Outcome,
    PerfusionState,
    Phase,
    Session,
    Severity,
    Threat,
    Transition,
)
from protocols import PROTOCOL_SEVERITY, DefinitiveCareProtocols, FluidSelector, number_interventions
from questions import get_question, questions_for
from record import export_clinical_record
from safety import SafetySupervisor
from threats import RULES_BY_ID, ThreatDetector

logger = logging.getLogger("resusgps.engine")

# Numeric answers that also land in the vitals snapshot
VITAL_FIELDS = {
    "heart_rate": "hr",
    "respiratory_rate": "rr",
    "spo2": "spo2",
    "crt": "crt",
    "temperature": "temperature",
    "lactate": "lactate",
}

# Phases in which survey answers may move the session between survey and intervention
SURVEY_PHASES = (Phase.IDLE, Phase.QUICK_ASSESSMENT, Phase.PRIMARY_SURVEY, Phase.INTERVENTION)

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _parse_number(text: Optional[str]) -> Optional[float]:
    try:
        return float(text)
    except (TypeError, ValueError):
        return None

# --- 1. DERIVED STATE ---

def derive_perfusion_state(session: Session) -> Optional[PerfusionState]:
    """Combines CRT with skin, pulse and HR. None until CRT is measured."""
    crt = session.vital_signs.crt
    if crt is None:
        return None
    f = session.findings_map
    skin = f.get("skin_temperature")
    pulse = f.get("pulse_quality")
    vasoconstricted = skin in ("cool", "cold") or pulse == "weak"

    if crt > CRT_CONSTANTS.DELAYED_MAX_SEC and vasoconstricted:
        return PerfusionState.SEVERE_COLD_SHOCK
    if crt > CRT_CONSTANTS.NORMAL_MAX_SEC and vasoconstricted:
        return PerfusionState.COLD_SHOCK
    if skin == "warm_flushed" and (pulse == "bounding"
                                   or f.get("heart_rate") in ("tachycardia", "severe_tachycardia")):
        return PerfusionState.WARM_SHOCK
    if crt > CRT_CONSTANTS.NORMAL_MAX_SEC:
        return PerfusionState.POOR_PERFUSION
    return PerfusionState.NORMAL

def _update_vitals(session: Session, question_id: str,
                   numeric: Optional[float], numeric2: Optional[float]) -> Session:
    vitals = session.vital_signs
    if question_id in VITAL_FIELDS:
        vitals = replace(vitals, **{VITAL_FIELDS[question_id]: numeric})
    elif question_id == "glucose":
        vitals = replace(vitals, glucose=numeric,
                         glucose_mg_dl=float(round(numeric * GLUCOSE_CONSTANTS.MGDL_PER_MMOL)))
    elif question_id == "blood_pressure":
        vitals = replace(vitals, sbp=numeric, dbp=numeric2)
    else:
        return session
    return replace(session, vital_signs=vitals)

def _is_bolus(intervention: Intervention) -> bool:
    return "BOLUS" in intervention.action

def _starts_insulin(intervention: Intervention) -> bool:
    action = intervention.action.upper()
    return "INSULIN INFUSION" in action and not action.startswith("DO NOT")

def _adds_potassium(intervention: Intervention) -> bool:
    return "POTASSIUM" in intervention.action.upper() or "KCl" in intervention.action

# --- 2. QUERIES ---

def get_current_questions(session: Session) -> Tuple[AssessmentQuestion, ...]:
    if session.phase != Phase.PRIMARY_SURVEY:
        return ()
    return questions_for(session.current_letter)

def get_answered_question_ids(session: Session) -> List[str]:
    return [f.id for f in session.findings]

def get_active_threats(session: Session) -> List[Threat]:
    """Unresolved threats: critical before urgent before monitor, then X-A-B-C-D-E."""
    active = [t for t in session.threats if not t.resolved]
    return sorted(active, key=lambda t: (SEVERITY_RANK[t.severity], LETTER_RANK[t.letter]))

def get_pending_interventions(threat: Threat) -> List[Intervention]:
    return [i for i in threat.interventions if i.is_pending]

def get_all_pending_critical(session: Session) -> List[Tuple[Threat, Intervention]]:
    return [(t, i) for t in get_active_threats(session) for i in get_pending_interventions(t) if i.critical]

def letter_complete(session: Session, letter: Letter) -> bool:
    answered = set(get_answered_question_ids(session))
    return all(q.id in answered for q in questions_for(letter))

def next_letter(session: Session) -> Optional[Letter]:
    order = session.survey_order
    if session.current_letter not in order:
        return order[0]
    idx = order.index(session.current_letter)
    return order[idx + 1] if idx + 1 < len(order) else None

# --- 3. THE ENGINE ---

class ResusEngine:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or _utcnow

    # Helpers
    def _event(self, type: EventType, detail: str, letter: Optional[Letter] = None) -> ClinicalEvent:
        return ClinicalEvent(timestamp=self.clock(), type=type, detail=detail, letter=letter)

    @staticmethod
    def _commit(session: Session, events: List[ClinicalEvent], **changes) -> Session:
        return replace(session, events=session.events + tuple(events), **changes)

    @staticmethod
    def _no_change(session: Session, why: str) -> Transition:
        logger.debug(f"No change: {why}")
        return Transition(session=session, outcome=Outcome.NO_CHANGE)

    @staticmethod
    def _not_found(session: Session, what: str) -> Transition:
        logger.debug(f"Not found: {what}")
        return Transition(session=session, outcome=Outcome.NOT_FOUND)

    @staticmethod
    def _invalid(session: Session, why: str) -> Transition:
        logger.warning(f"Invalid input: {why}")
        return Transition(session=session, outcome=Outcome.INVALID)

    def _advance(self, session: Session, events: List[ClinicalEvent], keep_phase: bool = False) -> Session:
        upcoming = next_letter(session)
        if keep_phase:
            # Arrest, post-ROSC and definitive care own the phase; only the letter moves
            if upcoming is None:
                return session
            events.append(self._event(EventType.PHASE_CHANGE, f"Survey letter -> {upcoming.value}", upcoming))
            logger.info(f"Advancing to letter {upcoming.value} (phase stays {session.phase.value})")
            return replace(session, current_letter=upcoming)
        if upcoming is None:
            events.append(self._event(EventType.PHASE_CHANGE, "-> SECONDARY SURVEY"))
            logger.info("Primary survey complete -> SECONDARY_SURVEY")
            return replace(session, phase=Phase.SECONDARY_SURVEY)
        events.append(self._event(EventType.PHASE_CHANGE, f"-> PRIMARY SURVEY: {upcoming.value}", upcoming))
        logger.info(f"Advancing to letter {upcoming.value}")
        return replace(session, phase=Phase.PRIMARY_SURVEY, current_letter=upcoming)

    # --- Lifecycle ---

    def create_session(self, weight: Optional[float] = None, age: Optional[str] = None,
                       is_trauma: bool = False) -> Session:
        session = Session(
            start_time=self.clock(),
            current_letter=Letter.X if is_trauma else Letter.A,
            patient_weight=weight,
            patient_age=age,
            is_trauma=is_trauma,
        )
        tracker = replace(session.fluid_tracker, fluid_type=FluidSelector.select_default_fluid(age))
        return replace(session, fluid_tracker=tracker)

    def start_quick_assessment(self, session: Session) -> Transition:
        """Always (re)starts the clock; findings and threats recorded so far are kept."""
        now = self.clock()
        detail = "Session started -> QUICK ASSESSMENT"
        if session.phase != Phase.IDLE:
            detail = f"Quick assessment restarted from {session.phase.value}"
        event = ClinicalEvent(timestamp=now, type=EventType.PHASE_CHANGE, detail=detail)
        logger.info(detail)
        return Transition(self._commit(session, [event], phase=Phase.QUICK_ASSESSMENT, start_time=now), (event,))

    def answer_quick_assessment(self, session: Session, answer: str) -> Transition:
        if answer not in ("sick", "not_sick"):
            return self._invalid(session, f"quick assessment must be 'sick' or 'not_sick', got {answer!r}")
        first = Letter.X if session.is_trauma else Letter.A
        events = [
            self._event(EventType.PHASE_CHANGE,
                        f"Quick assessment: {'SICK: activate the team' if answer == 'sick' else 'NOT SICK'}"),
            self._event(EventType.PHASE_CHANGE, f"-> PRIMARY SURVEY: {first.value}", first),
        ]
        logger.info(f"Quick assessment: {answer}")
        nxt = self._commit(session, events, quick_assessment=answer,
                           phase=Phase.PRIMARY_SURVEY, current_letter=first)
        return Transition(nxt, tuple(events))

    def answer_primary_survey(self, session: Session, question_id: str, answer: str,
                              question: Optional[AssessmentQuestion] = None,
                              numeric: Optional[float] = None,
                              numeric2: Optional[float] = None) -> Transition:
        question = question or get_question(question_id)
        if question is None:
            return self._not_found(session, f"question {question_id}")
        if question_id in session.findings_map:
            return self._no_change(session, f"{question_id} already answered")
        if question.input_type == InputType.SELECT:
            if not answer:
                return self._invalid(session, f"{question_id} needs an answer")
        elif numeric is None:
            # The answer text may carry the number itself
            numeric = _parse_number(answer)
            if numeric is None:
                return self._invalid(session, f"{question_id} needs a numeric value, got {answer!r}")

        now = self.clock()
        finding = self._build_finding(session, question, answer, numeric, numeric2, now)
        events = [ClinicalEvent(now, EventType.FINDING,
                                f"{question.letter.value}: {question.text} -> {finding.description}",
                                question.letter)]

        nxt = replace(session, findings=session.findings + (finding,))
        if question.input_type != InputType.SELECT:
            nxt = _update_vitals(nxt, question_id, finding.numeric_value, finding.numeric_value2)
        if question.letter == Letter.C:
            nxt = replace(nxt, derived_perfusion=derive_perfusion_state(nxt))

        # Pass 1: every rule that triggers now
        new_threats = ThreatDetector.detect_new(nxt)
        for threat in new_threats:
            events.append(ClinicalEvent(now, EventType.THREAT_IDENTIFIED, f"THREAT: {threat.name}", threat.letter))
            logger.info(f"Threat identified: {threat.id} ({threat.severity.value})")
        nxt = replace(nxt, threats=nxt.threats + tuple(new_threats))

        # Pass 2: the batch decides the phase, but only while the survey owns it
        if session.phase not in SURVEY_PHASES:
            if letter_complete(nxt, nxt.current_letter):
                nxt = self._advance(nxt, events, keep_phase=True)
            return Transition(self._commit(nxt, events), tuple(events))

        critical = [t for t in new_threats if t.severity == Severity.CRITICAL]
        if critical:
            names = ", ".join(t.name for t in critical)
            events.append(ClinicalEvent(now, EventType.PHASE_CHANGE, f"-> INTERVENTION for {names}"))
            logger.info(f"Critical threat -> INTERVENTION ({names})")
            nxt = replace(nxt, phase=Phase.INTERVENTION)
        elif letter_complete(nxt, nxt.current_letter):
            urgent = [t for t in nxt.threats
                      if t.letter == nxt.current_letter and not t.resolved and t.severity == Severity.URGENT]
            if urgent:
                events.append(ClinicalEvent(now, EventType.PHASE_CHANGE,
                                            f"-> INTERVENTION for urgent threats at {nxt.current_letter.value}"))
                logger.info(f"Urgent threats at {nxt.current_letter.value} -> INTERVENTION")
                nxt = replace(nxt, phase=Phase.INTERVENTION)
            else:
                nxt = self._advance(nxt, events)

        return Transition(self._commit(nxt, events), tuple(events))

    @staticmethod
    def _build_finding(session: Session, question: AssessmentQuestion, answer: str,
                       numeric: Optional[float], numeric2: Optional[float], now: datetime) -> Finding:
        if question.input_type == InputType.SELECT:
            option = question.option_for(answer)
            if option is None:
                # Free-text answer outside the catalog: keep it, flag it for review
                logger.info(f"Unlisted answer {answer!r} for {question.id}")
                return Finding(id=question.id, letter=question.letter, value=answer,
                               description=answer, timestamp=now, severity=Severity.MONITOR)
            return Finding(id=question.id, letter=question.letter, value=option.value,
                           description=option.label, timestamp=now, severity=option.severity)

        config = question.number_config or question.number_pair_config
        interp = config.interpret(numeric, numeric2, get_age_profile(session.patient_age))
        return Finding(id=question.id, letter=question.letter, value=interp.category,
                       description=interp.label, timestamp=now, severity=interp.severity,
                       numeric_value=numeric, numeric_value2=numeric2, unit=config.unit)

    def return_to_primary_survey(self, session: Session) -> Transition:
        events: List[ClinicalEvent] = []
        if letter_complete(session, session.current_letter):
            nxt = self._advance(session, events)
        else:
            events.append(self._event(EventType.PHASE_CHANGE,
                                      f"-> PRIMARY SURVEY: continue {session.current_letter.value}",
                                      session.current_letter))
            nxt = replace(session, phase=Phase.PRIMARY_SURVEY)
        return Transition(self._commit(nxt, events), tuple(events))

    # --- Interventions ---

    @staticmethod
    def _locate(session: Session, intervention_id: str) -> Optional[Tuple[int, int]]:
        for ti, threat in enumerate(session.threats):
            for ii, intervention in enumerate(threat.interventions):
                if intervention.id == intervention_id:
                    return ti, ii
        return None

    @staticmethod
    def _swap(session: Session, ti: int, ii: int, intervention: Intervention) -> Session:
        threat = session.threats[ti]
        interventions = threat.interventions[:ii] + (intervention,) + threat.interventions[ii + 1:]
        threats = session.threats[:ti] + (replace(threat, interventions=interventions),) + session.threats[ti + 1:]
        return replace(session, threats=threats)

    def start_intervention(self, session: Session, intervention_id: str) -> Transition:
        where = self._locate(session, intervention_id)
        if where is None:
            return self._not_found(session, f"intervention {intervention_id}")
        ti, ii = where
        threat = session.threats[ti]
        current = threat.interventions[ii]
        if current.status != InterventionStatus.PENDING:
            return self._no_change(session, f"{intervention_id} is {current.status.value}")

        now = self.clock()
        event = ClinicalEvent(now, EventType.INTERVENTION_STARTED, f"Started: {current.action}", threat.letter)
        nxt = self._swap(session, ti, ii, replace(current, status=InterventionStatus.IN_PROGRESS, started_at=now))
        logger.info(f"Intervention started: {intervention_id}")
        return Transition(self._commit(nxt, [event]), (event,))

    def complete_intervention(self, session: Session, intervention_id: str) -> Transition:
        where = self._locate(session, intervention_id)
        if where is None:
            return self._not_found(session, f"intervention {intervention_id}")
        ti, ii = where
        threat = session.threats[ti]
        current = threat.interventions[ii]
        if not current.is_pending:
            return self._no_change(session, f"{intervention_id} is {current.status.value}")

        now = self.clock()
        done = replace(current, status=InterventionStatus.COMPLETED, completed_at=now)
        nxt = self._swap(session, ti, ii, done)
        event = ClinicalEvent(now, EventType.INTERVENTION_COMPLETED, f"Done: {current.action}", threat.letter)
        logger.info(f"Intervention completed: {intervention_id}")

        if _is_bolus(current):
            tracker = record_bolus(nxt.fluid_tracker, current.dose, nxt.patient_weight)
            nxt = replace(nxt, fluid_tracker=tracker)
            logger.info(f"Bolus #{tracker.bolus_count}: {tracker.total_volume_per_kg:.1f} mL/kg total")
        if _starts_insulin(current):
            nxt = replace(nxt, insulin_running=True)
        if _adds_potassium(current):
            nxt = replace(nxt, potassium_added=True)

        nxt = self._commit(nxt, [event])
        nxt, alerts = SafetySupervisor.check_real_time(nxt, now)
        return Transition(nxt, (event,) + tuple(alerts))

    # --- History, patient details, diagnosis ---

    def update_sample(self, session: Session, field: str, value: str) -> Transition:
        if field not in SAMPLE_FIELDS:
            return self._invalid(session, f"unknown SAMPLE field {field!r}; "
                                          f"expected one of {', '.join(SAMPLE_FIELDS)}")
        event = self._event(EventType.NOTE, f"SAMPLE {field}: {value}")
        history = replace(session.sample_history, **{field: value})
        return Transition(self._commit(session, [event], sample_history=history), (event,))

    def update_patient_info(self, session: Session, weight: Optional[float], age: Optional[str]) -> Transition:
        """
        Corrects weight/age mid-case. Fluid totals are re-expressed per kg and
        the default fluid follows the new age. Existing interventions are kept
        as generated; their per-kg doses render against the new weight.
        """
        tracker = recompute_for_patient(session.fluid_tracker, weight,
                                        FluidSelector.select_default_fluid(age))
        weight_text = f"{weight:g} kg" if weight else "unknown"
        event = self._event(EventType.PATIENT_INFO_UPDATED,
                            f"Patient info updated: weight {weight_text}, age {age or 'unknown'}")
        logger.info(f"Patient info updated: weight={weight}, age={age}")
        nxt = self._commit(session, [event], patient_weight=weight, patient_age=age, fluid_tracker=tracker)
        return Transition(nxt, (event,))

    def set_definitive_diagnosis(self, session: Session, diagnosis: str) -> Transition:
        events = [
            self._event(EventType.DIAGNOSIS, f"DEFINITIVE DIAGNOSIS: {diagnosis}"),
            self._event(EventType.PHASE_CHANGE, f"-> DEFINITIVE CARE: {diagnosis}"),
        ]
        threats = session.threats
        protocol = DefinitiveCareProtocols.match(diagnosis)
        if protocol is not None and protocol[0] not in session.threat_ids:
            tid, name, letter = protocol
            steps = DefinitiveCareProtocols.interventions(tid, session)
            threats = threats + (Threat(id=tid, letter=letter, name=name, severity=PROTOCOL_SEVERITY,
                                        interventions=number_interventions(tid, steps)),)
            events.append(self._event(EventType.THREAT_IDENTIFIED, f"PROTOCOL: {name}", letter))
            logger.info(f"Definitive care protocol attached: {tid}")
        nxt = self._commit(session, events, definitive_diagnosis=diagnosis,
                           phase=Phase.DEFINITIVE_CARE, threats=threats)
        return Transition(nxt, tuple(events))

    # --- Arrest ---

    def trigger_cardiac_arrest(self, session: Session) -> Transition:
        if session.phase == Phase.CARDIAC_ARREST:
            return self._no_change(session, "already in cardiac arrest")
        events = [self._event(EventType.CARDIAC_ARREST_START, "CARDIAC ARREST: CPR STARTED", Letter.C)]
        threats = session.threats
        if "cardiac_arrest" not in session.threat_ids:
            threats = threats + (ThreatDetector.materialize(RULES_BY_ID["cardiac_arrest"], session),)
        logger.warning("Cardiac arrest declared")
        nxt = self._commit(session, events, phase=Phase.CARDIAC_ARREST, threats=threats)
        return Transition(nxt, tuple(events))

    def achieve_rosc(self, session: Session) -> Transition:
        if session.phase != Phase.CARDIAC_ARREST:
            return self._no_change(session, f"ROSC outside cardiac arrest ({session.phase.value})")
        now = self.clock()
        event = ClinicalEvent(now, EventType.ROSC, "ROSC ACHIEVED: post-resuscitation care")
        logger.info("ROSC achieved -> ONGOING")
        nxt = self._commit(session, [event], phase=Phase.ONGOING)
        nxt, alerts = SafetySupervisor.check_real_time(nxt, now)
        return Transition(nxt, (event,) + tuple(alerts))

    # --- Safety alerts ---

    def acknowledge_safety_alert(self, session: Session, alert_id: str) -> Transition:
        nxt, events, found = SafetySupervisor.acknowledge(session, alert_id, self.clock())
        if not found:
            return self._not_found(session, f"safety alert {alert_id}")
        if not events:
            return self._no_change(session, f"{alert_id} already acknowledged")
        return Transition(nxt, tuple(events))

    # --- Read models ---

    get_current_questions = staticmethod(get_current_questions)
    get_answered_question_ids = staticmethod(get_answered_question_ids)
    get_active_threats = staticmethod(get_active_threats)
    get_pending_interventions = staticmethod(get_pending_interventions)
    get_all_pending_critical = staticmethod(get_all_pending_critical)
    derive_perfusion_state = staticmethod(derive_perfusion_state)

    @staticmethod
    def get_suggested_diagnoses(session: Session) -> List[DiagnosisSuggestion]:
        return get_suggested_diagnoses(session)

    @staticmethod
    def export_clinical_record(session: Session) -> str:
        return export_clinical_record(session)
