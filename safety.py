# safety.py
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Tuple

from constants import FLUID_CONSTANTS
from models import AlertSeverity, ClinicalEvent, EventType, SafetyAlert, Session
from threats import heart_failure_present

logger = logging.getLogger("resusgps.safety")

@dataclass(frozen=True)
class SafetyRule:
    id: str
    condition: Callable[[Session], bool]
    message: str
    severity: AlertSeverity

SAFETY_RULES: Tuple[SafetyRule, ...] = (
    # 1. Insulin drives K+ into cells: fatal hypokalemia without replacement
    SafetyRule(
        "insulin_without_potassium",
        lambda s: s.insulin_running and not s.potassium_added,
        "INSULIN RUNNING WITHOUT POTASSIUM: risk of fatal hypokalemia and arrest. "
        "Add KCl 20-40 mmol/L to the IV fluids.",
        AlertSeverity.DANGER,
    ),
    # 2. Volume Overload Risk
    SafetyRule(
        "excessive_boluses",
        lambda s: s.bolus_count >= FLUID_CONSTANTS.EXCESSIVE_BOLUS_COUNT,
        "3+ FLUID BOLUSES: reassess for overload (crackles, hepatomegaly, worsening work of breathing). "
        "Consider inotropes if still shocked.",
        AlertSeverity.WARNING,
    ),
    # 3. Cerebral Edema Risk (rapid osmolality shift)
    SafetyRule(
        "bolus_in_hyperglycemia",
        lambda s: (s.bolus_count >= FLUID_CONSTANTS.HYPERGLYCEMIA_BOLUS_COUNT
                   and s.findings_map.get("glucose") in ("high", "very_high")),
        "REPEATED BOLUSES WITH HYPERGLYCEMIA: cerebral edema risk. "
        "Use 10 mL/kg aliquots and reassess after each one.",
        AlertSeverity.DANGER,
    ),
    # 4. Refractory Shock
    SafetyRule(
        "fluid_refractory_shock",
        lambda s: s.fluid_tracker.is_fluid_refractory,
        "FLUID-REFRACTORY SHOCK: >= 60 mL/kg given. Stop boluses, start an inotrope, call ICU.",
        AlertSeverity.DANGER,
    ),
    # 5. Pump failure: volume makes it worse
    SafetyRule(
        "bolus_despite_heart_failure",
        lambda s: s.bolus_count >= 1 and heart_failure_present(s.findings_map),
        "BOLUS GIVEN WITH HEART FAILURE SIGNS: stop fluids, consider inotrope and diuretic.",
        AlertSeverity.DANGER,
    ),
)

class SafetySupervisor:
    @staticmethod
    def check_real_time(session: Session, now: datetime) -> Tuple[Session, List[ClinicalEvent]]:
        """
        Runs every rule against the whole session. A rule whose alert is still
        unacknowledged stays quiet; once acknowledged it may fire again.
        """
        open_ids = {a.id for a in session.safety_alerts if not a.acknowledged}
        alerts = list(session.safety_alerts)
        events: List[ClinicalEvent] = []

        for rule in SAFETY_RULES:
            if rule.id in open_ids or not rule.condition(session):
                continue
            alerts.append(SafetyAlert(id=rule.id, message=rule.message,
                                      severity=rule.severity, timestamp=now))
            events.append(ClinicalEvent(timestamp=now, type=EventType.SAFETY_ALERT, detail=rule.message))
            logger.warning(f"Safety alert {rule.id} ({rule.severity.value})")

        if not events:
            return session, events
        return replace(session, safety_alerts=tuple(alerts),
                       events=session.events + tuple(events)), events

    @staticmethod
    def acknowledge(session: Session, alert_id: str, now: datetime) -> Tuple[Session, List[ClinicalEvent], bool]:
        """Returns (session, new events, found)."""
        if not any(a.id == alert_id for a in session.safety_alerts):
            return session, [], False
        if all(a.acknowledged for a in session.safety_alerts if a.id == alert_id):
            return session, [], True

        alerts = tuple(replace(a, acknowledged=True) if a.id == alert_id and not a.acknowledged else a
                       for a in session.safety_alerts)
        event = ClinicalEvent(timestamp=now, type=EventType.SAFETY_ALERT_ACKNOWLEDGED,
                              detail=f"Acknowledged: {alert_id}")
        logger.info(f"Safety alert {alert_id} acknowledged")
        return replace(session, safety_alerts=alerts, events=session.events + (event,)), [event], True
