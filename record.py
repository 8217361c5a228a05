# record.py
"""
Plain-text clinical record for handover and the notes.
Doses are rendered against the weight the session carries now.
"""
from typing import List

from dosing import calc_dose
from models import InterventionStatus, SAMPLE_FIELDS, Session

RULE = "=" * 50
SUBRULE = "-" * 50

def _elapsed(session: Session, timestamp) -> str:
    seconds = max(0, int((timestamp - session.start_time).total_seconds()))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"

def _fmt(value, unit: str = "") -> str:
    if value is None:
        return "-"
    return f"{value:g}{unit}"

def _section(lines: List[str], title: str) -> None:
    lines.append("")
    lines.append(title)
    lines.append(SUBRULE)

def export_clinical_record(session: Session) -> str:
    lines: List[str] = [RULE, "ResusGPS CLINICAL RECORD", RULE]
    lines.append(f"Start: {session.start_time.isoformat()}")
    lines.append(f"Weight: {session.patient_weight:g} kg" if session.patient_weight else "Weight: unknown")
    lines.append(f"Age: {session.patient_age}" if session.patient_age else "Age: unknown")
    lines.append(f"Case: {'TRAUMA' if session.is_trauma else 'MEDICAL'}")
    if session.quick_assessment:
        lines.append(f"Quick assessment: {session.quick_assessment.replace('_', ' ').upper()}")
    lines.append(f"Phase: {session.phase.value}")

    # 1. Vitals
    v = session.vital_signs
    _section(lines, "VITAL SIGNS")
    lines.append(f"HR: {_fmt(v.hr, ' bpm')}   RR: {_fmt(v.rr, '/min')}   SpO2: {_fmt(v.spo2, '%')}")
    bp = f"{v.sbp:g}/{_fmt(v.dbp)} mmHg" if v.sbp is not None else "-"
    lines.append(f"BP: {bp}   CRT: {_fmt(v.crt, ' s')}   Temp: {_fmt(v.temperature, ' C')}")
    glucose = f"{v.glucose:g} mmol/L ({v.glucose_mg_dl:g} mg/dL)" if v.glucose is not None else "-"
    lines.append(f"Glucose: {glucose}   Lactate: {_fmt(v.lactate, ' mmol/L')}")
    if session.derived_perfusion is not None:
        lines.append(f"Perfusion: {session.derived_perfusion.value.replace('_', ' ')}")

    # 2. Fluids
    tracker = session.fluid_tracker
    if tracker.bolus_count > 0:
        _section(lines, "FLUID RESUSCITATION")
        lines.append(f"Fluid: {tracker.fluid_type.value}")
        lines.append(f"Boluses given: {tracker.bolus_count}")
        lines.append(f"Total volume: {tracker.total_volume_ml:g} mL ({tracker.total_volume_per_kg:.1f} mL/kg)")
        if tracker.is_fluid_refractory:
            lines.append("FLUID-REFRACTORY SHOCK")

    # 3. Findings
    _section(lines, "FINDINGS")
    if not session.findings:
        lines.append("None recorded")
    for finding in session.findings:
        flag = f" [{finding.severity.value.upper()}]" if finding.severity else ""
        lines.append(f"[{finding.letter.value}] {finding.id}: {finding.description}{flag}")

    # 4. Threats and what was done
    _section(lines, "THREATS")
    if not session.threats:
        lines.append("None identified")
    for threat in session.threats:
        status = " (resolved)" if threat.resolved else ""
        lines.append(f"[{threat.letter.value}] {threat.name} ({threat.severity.value.upper()}){status}")
        for intervention in threat.interventions:
            mark = "x" if intervention.status == InterventionStatus.COMPLETED else " "
            line = f"    [{mark}] {intervention.action}"
            if intervention.dose is not None:
                line += f": {calc_dose(intervention.dose, session.patient_weight)}"
            lines.append(line)

    if session.safety_alerts:
        _section(lines, "SAFETY ALERTS")
        for alert in session.safety_alerts:
            ack = "acknowledged" if alert.acknowledged else "OPEN"
            lines.append(f"{_elapsed(session, alert.timestamp)}  [{alert.severity.value.upper()}] "
                         f"{alert.message} ({ack})")

    history = session.sample_history
    recorded = [(name, getattr(history, name)) for name in SAMPLE_FIELDS if getattr(history, name)]
    if recorded:
        _section(lines, "SAMPLE HISTORY")
        for name, value in recorded:
            lines.append(f"{name.replace('_', ' ').title()}: {value}")

    if session.definitive_diagnosis:
        _section(lines, "DIAGNOSIS")
        lines.append(session.definitive_diagnosis)

    # 5. Timeline
    _section(lines, "EVENT LOG")
    for event in session.events:
        letter = f"[{event.letter.value}] " if event.letter else ""
        lines.append(f"{_elapsed(session, event.timestamp)}  {letter}{event.detail}")

    completed = sum(1 for t in session.threats for i in t.interventions
                    if i.status == InterventionStatus.COMPLETED)
    lines.append("")
    lines.append(RULE)
    lines.append(f"Total events: {len(session.events)}   Threats: {len(session.threats)}   "
                 f"Interventions completed: {completed}")
    return "\n".join(lines)
