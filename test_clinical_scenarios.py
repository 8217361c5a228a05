import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from engine import ResusEngine, get_active_threats
from models import CheckType, Confidence, Letter, Outcome, Phase, Severity, Threat
from protocols import PrescriptionEngine, number_interventions

T0 = datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)

class TickingClock:
    """Advances 30 seconds per reading so the event log has real elapsed times."""
    def __init__(self):
        self.now = T0

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=30)
        return current

class TestClinicalScenarios(unittest.TestCase):
    """
    Bedside cases run end-to-end through the engine.
    Run with: python -m unittest test_clinical_scenarios.py
    """

    def setUp(self):
        self.engine = ResusEngine(clock=lambda: T0)

    def create_base_patient(self, weight=18, age="5 years"):
        s = self.engine.create_session(weight, age)
        s = self.engine.start_quick_assessment(s).session
        return self.engine.answer_quick_assessment(s, "sick").session

    def answer(self, session, qid, value, numeric=None, numeric2=None):
        return self.engine.answer_primary_survey(session, qid, value, numeric=numeric, numeric2=numeric2).session

    def with_boluses(self, session, count, threat_id="volume_test"):
        """Attach a threat carrying `count` standard boluses."""
        steps = [PrescriptionEngine.generate_bolus(session) for _ in range(count)]
        threat = Threat(threat_id, Letter.C, "Volume test", Severity.URGENT,
                        interventions=number_interventions(threat_id, steps))
        return replace(session, threats=session.threats + (threat,))

    def cold_shock_patient(self):
        s = self.create_base_patient()
        for qid, value in (("avpu", "alert"), ("airway_status", "patent"), ("choking", "no"),
                           ("airway_sounds", "clear"), ("breathing_effort", "normal")):
            s = self.answer(s, qid, value)
        s = self.answer(s, "respiratory_rate", "", 28)
        s = self.answer(s, "spo2", "", 97)
        s = self.answer(s, "breathing_sounds", "clear")
        s = self.answer(s, "pulse_quality", "weak")
        s = self.answer(s, "heart_rate", "", 160)
        s = self.answer(s, "crt", "", 5)
        return self.answer(s, "skin_temperature", "cold")

    def test_01_cold_shock_bolus(self):
        """[SHOCK] Cold shock prescribes 10 mL/kg RL with reassessment script"""
        print("\nTEST 1: Cold Shock Bolus Prescription")
        s = self.cold_shock_patient()
        self.assertIn("cold_shock", s.threat_ids)
        shock = [t for t in get_active_threats(s) if t.id == "cold_shock"][0]
        bolus = [i for i in shock.interventions if "BOLUS" in i.action][0]

        self.assertIn("Ringer", bolus.action)
        self.assertEqual(bolus.dose.dose_per_kg, 10)
        self.assertEqual(bolus.timer_seconds, 600)
        kinds = {c.type for c in bolus.reassessment_checks}
        self.assertIn(CheckType.COMPLICATION, kinds)
        self.assertIn(CheckType.THERAPEUTIC_ENDPOINT, kinds)

        s = self.engine.complete_intervention(s, bolus.id).session
        self.assertEqual(s.fluid_tracker.bolus_count, 1)
        self.assertEqual(s.fluid_tracker.total_volume_ml, 180)
        self.assertAlmostEqual(s.fluid_tracker.total_volume_per_kg, 10.0)

    def test_02_cautious_bolus_with_heart_failure(self):
        """[SHOCK] Hepatomegaly before shock -> 5 mL/kg cautious bolus + alert on giving it"""
        print("\nTEST 2: Cardiogenic Caution")
        s = self.create_base_patient()
        s = self.answer(s, "heart_failure_signs", "hepatomegaly")
        s = self.answer(s, "pulse_quality", "weak")
        s = self.answer(s, "crt", "", 3)
        self.assertIn("cold_shock", s.threat_ids)
        shock = [t for t in s.threats if t.id == "cold_shock"][0]
        bolus = [i for i in shock.interventions if "BOLUS" in i.action][0]
        self.assertIn("CAUTIOUS", bolus.action)
        self.assertEqual(bolus.dose.dose_per_kg, 5)

        t = self.engine.complete_intervention(s, bolus.id)
        self.assertIn("bolus_despite_heart_failure", [a.id for a in t.session.safety_alerts])
        self.assertEqual(t.session.fluid_tracker.total_volume_ml, 90)

    def test_03_excessive_boluses_fire_once(self):
        """[SAFETY] Third bolus raises one unacknowledged warning, not one per bolus"""
        print("\nTEST 3: Excessive Boluses Alert")
        s = self.with_boluses(self.create_base_patient(), 5)
        for n in (1, 2, 3):
            s = self.engine.complete_intervention(s, f"volume_test-{n}").session
        alerts = [a for a in s.safety_alerts if a.id == "excessive_boluses"]
        self.assertEqual(len(alerts), 1)
        self.assertFalse(alerts[0].acknowledged)

        s = self.engine.complete_intervention(s, "volume_test-4").session
        self.assertEqual(len([a for a in s.safety_alerts if a.id == "excessive_boluses"]), 1)

        # Acknowledged: the next violation raises it again
        s = self.engine.acknowledge_safety_alert(s, "excessive_boluses").session
        s = self.engine.complete_intervention(s, "volume_test-5").session
        alerts = [a for a in s.safety_alerts if a.id == "excessive_boluses"]
        self.assertEqual(len(alerts), 2)
        self.assertEqual([a.acknowledged for a in alerts], [True, False])

    def test_04_acknowledge_is_idempotent(self):
        """[SAFETY] Double acknowledge: still acknowledged, no duplicate, no error"""
        print("\nTEST 4: Acknowledge Twice")
        s = self.with_boluses(self.create_base_patient(), 3)
        for n in (1, 2, 3):
            s = self.engine.complete_intervention(s, f"volume_test-{n}").session

        first = self.engine.acknowledge_safety_alert(s, "excessive_boluses")
        self.assertEqual(first.outcome, Outcome.APPLIED)
        second = self.engine.acknowledge_safety_alert(first.session, "excessive_boluses")
        self.assertEqual(second.outcome, Outcome.NO_CHANGE)
        alerts = [a for a in second.session.safety_alerts if a.id == "excessive_boluses"]
        self.assertEqual(len(alerts), 1)
        self.assertTrue(alerts[0].acknowledged)

        unknown = self.engine.acknowledge_safety_alert(s, "no_such_alert")
        self.assertEqual(unknown.outcome, Outcome.NOT_FOUND)

    def test_05_fluid_refractory_at_60(self):
        """[FLUIDS] Per-kg volume tracks total/weight; refractory exactly at 60 mL/kg"""
        print("\nTEST 5: Fluid-Refractory Threshold")
        s = self.with_boluses(self.create_base_patient(weight=20), 6)
        for n in range(1, 6):
            s = self.engine.complete_intervention(s, f"volume_test-{n}").session
            tracker = s.fluid_tracker
            self.assertAlmostEqual(tracker.total_volume_per_kg, tracker.total_volume_ml / 20)
            self.assertFalse(tracker.is_fluid_refractory)

        s = self.engine.complete_intervention(s, "volume_test-6").session
        self.assertEqual(s.fluid_tracker.total_volume_ml, 1200)
        self.assertTrue(s.fluid_tracker.is_fluid_refractory)
        self.assertIn("fluid_refractory_shock", [a.id for a in s.safety_alerts])

        # A weight correction is the only thing that re-evaluates the flag
        s = self.engine.update_patient_info(s, 25, "6 years").session
        self.assertAlmostEqual(s.fluid_tracker.total_volume_per_kg, 48.0)
        self.assertFalse(s.fluid_tracker.is_fluid_refractory)

    def test_06_bolus_without_weight(self):
        """[FLUIDS] Unknown weight: bolus counted, volume unknown"""
        print("\nTEST 6: Bolus Count Without Weight")
        s = self.with_boluses(self.create_base_patient(weight=None), 1)
        s = self.engine.complete_intervention(s, "volume_test-1").session
        self.assertEqual(s.fluid_tracker.bolus_count, 1)
        self.assertEqual(s.fluid_tracker.total_volume_ml, 0)
        self.assertEqual(s.fluid_tracker.total_volume_per_kg, 0)

    def test_07_dka_suggestion(self):
        """[DKA] Very high glucose + Kussmaul -> high-confidence DKA with differentials"""
        print("\nTEST 7: DKA Pattern")
        s = self.create_base_patient()
        s = self.answer(s, "breathing_sounds", "kussmaul")
        s = self.answer(s, "glucose", "", 25)
        self.assertEqual(s.findings_map["glucose"], "very_high")

        diagnoses = self.engine.get_suggested_diagnoses(s)
        dka = [d for d in diagnoses if "DKA" in d.diagnosis][0]
        self.assertEqual(dka.confidence, Confidence.HIGH)
        self.assertTrue(dka.differentials)
        self.assertIn("ketones", dka.protocol)

        acidosis = [t for t in s.threats if t.id == "metabolic_acidosis_breathing"][0]
        self.assertIn("Metabolic Acidosis", acidosis.name)
        differential = [i for i in acidosis.interventions if "Differential" in i.action][0]
        for cause in ("DKA", "Sepsis", "Renal failure", "Poisoning"):
            self.assertIn(cause, differential.detail)

    def test_08_dka_protocol_and_potassium(self):
        """[DKA] Insulin before potassium raises a danger alert; potassium first does not"""
        print("\nTEST 8: Insulin Without Potassium")
        s = self.engine.set_definitive_diagnosis(self.create_base_patient(), "DKA").session
        protocol = [t for t in s.threats if t.id == "protocol_dka"][0]
        insulin = [i for i in protocol.interventions if "INSULIN INFUSION" in i.action][0]
        potassium = [i for i in protocol.interventions if "POTASSIUM" in i.action][0]

        unsafe = self.engine.complete_intervention(s, insulin.id).session
        self.assertTrue(unsafe.insulin_running)
        self.assertIn("insulin_without_potassium", [a.id for a in unsafe.safety_alerts])

        safe = self.engine.complete_intervention(s, potassium.id).session
        safe = self.engine.complete_intervention(safe, insulin.id).session
        self.assertTrue(safe.potassium_added)
        self.assertNotIn("insulin_without_potassium", [a.id for a in safe.safety_alerts])

    def test_09_hyperglycemia_caution_is_not_insulin(self):
        """[DKA] 'DO NOT START INSULIN INFUSION' does not count as insulin running"""
        print("\nTEST 9: Negated Insulin Step")
        s = self.answer(self.create_base_patient(), "glucose", "", 16)
        threat = [t for t in s.threats if t.id == "hyperglycemia"][0]
        hold = [i for i in threat.interventions if i.action.startswith("DO NOT")][0]
        s = self.engine.complete_intervention(s, hold.id).session
        self.assertFalse(s.insulin_running)
        self.assertEqual(s.safety_alerts, ())

    def test_10_boluses_in_hyperglycemia(self):
        """[SAFETY] Two boluses with glucose > 14 mmol/L -> cerebral edema warning"""
        print("\nTEST 10: Bolus in Hyperglycemia")
        s = self.answer(self.create_base_patient(), "glucose", "", 16)
        s = self.with_boluses(s, 2)
        s = self.engine.complete_intervention(s, "volume_test-1").session
        self.assertNotIn("bolus_in_hyperglycemia", [a.id for a in s.safety_alerts])
        s = self.engine.complete_intervention(s, "volume_test-2").session
        self.assertIn("bolus_in_hyperglycemia", [a.id for a in s.safety_alerts])

    def test_11_choking_by_age(self):
        """[AIRWAY] Chest thrusts under 1 year, abdominal thrusts above"""
        print("\nTEST 11: Choking Technique by Age")
        infant = self.answer(self.create_base_patient(8, "6 months"), "choking", "ineffective_cough")
        actions = [i.action for i in infant.threats[0].interventions]
        self.assertTrue(any("CHEST THRUSTS" in a for a in actions))

        child = self.answer(self.create_base_patient(), "choking", "ineffective_cough")
        actions = [i.action for i in child.threats[0].interventions]
        self.assertTrue(any("ABDOMINAL THRUSTS" in a for a in actions))

        coughing = self.answer(self.create_base_patient(), "choking", "effective_cough")
        self.assertEqual(coughing.threats[0].severity, Severity.URGENT)
        self.assertIn("ENCOURAGE COUGHING", coughing.threats[0].interventions[0].action)

    def test_12_neonatal_fever(self):
        """[SEPSIS] Neonates get cefotaxime, older children ceftriaxone"""
        print("\nTEST 12: Antibiotic Choice by Age")
        neonate = self.answer(self.create_base_patient(3.5, "5 days"), "temperature", "", 38.6)
        drugs = [i.dose.drug for t in neonate.threats for i in t.interventions if i.dose]
        self.assertIn("Cefotaxime", drugs)

        child = self.answer(self.create_base_patient(), "temperature", "", 39.8)
        self.assertEqual(child.findings_map["temperature"], "high_fever")
        drugs = [i.dose.drug for t in child.threats for i in t.interventions if i.dose]
        self.assertIn("Ceftriaxone", drugs)

    def test_13_septic_shock_case(self):
        """[SEPSIS] Fever with shock and petechiae: sepsis high, meningococcal high"""
        print("\nTEST 13: Febrile Shock")
        s = self.cold_shock_patient()
        s = self.answer(s, "temperature", "", 39.5)
        s = self.answer(s, "rash", "petechiae")
        self.assertIn("fever_infection", s.threat_ids)
        self.assertIn("purpura", s.threat_ids)

        diagnoses = self.engine.get_suggested_diagnoses(s)
        sepsis = [d for d in diagnoses if "Sepsis" in d.diagnosis][0]
        self.assertEqual(sepsis.confidence, Confidence.HIGH)
        self.assertIn("Petechiae/Purpura", sepsis.supporting_findings)
        self.assertEqual(diagnoses[0].confidence, Confidence.HIGH)

    def test_14_event_log_timeline(self):
        """[RECORD] Full case leaves an ordered, timestamped event log"""
        print("\nTEST 14: Timeline")
        engine = ResusEngine(clock=TickingClock())
        s = engine.create_session(18, "5 years")
        s = engine.start_quick_assessment(s).session
        s = engine.answer_quick_assessment(s, "sick").session
        s = engine.answer_primary_survey(s, "airway_status", "obstructed").session
        self.assertEqual(s.phase, Phase.INTERVENTION)
        stamps = [e.timestamp for e in s.events]
        self.assertEqual(stamps, sorted(stamps))
        self.assertGreater(stamps[-1], s.start_time)

    def test_15_refractory_infant_4_4_kg(self):
        """[FLUIDS] 4.4 kg infant: sixth 10 mL/kg bolus is exactly 60 mL/kg and trips the alert"""
        print("\nTEST 15: Refractory Threshold at 4.4 kg")
        s = self.with_boluses(self.create_base_patient(weight=4.4, age="6 months"), 6)
        for n in range(1, 6):
            s = self.engine.complete_intervention(s, f"volume_test-{n}").session
        self.assertFalse(s.fluid_tracker.is_fluid_refractory)
        self.assertNotIn("fluid_refractory_shock", [a.id for a in s.safety_alerts])

        s = self.engine.complete_intervention(s, "volume_test-6").session
        self.assertEqual(s.fluid_tracker.total_volume_per_kg, 60.0)
        self.assertTrue(s.fluid_tracker.is_fluid_refractory)
        self.assertIn("fluid_refractory_shock", [a.id for a in s.safety_alerts])

    def test_16_answers_during_arrest_keep_the_phase(self):
        """[ARREST] Finishing a letter mid-arrest moves the letter, never the phase"""
        print("\nTEST 16: Survey Answers During Arrest / Post-ROSC")
        s = self.create_base_patient()
        for qid, value in (("avpu", "alert"), ("airway_status", "patent"), ("choking", "no")):
            s = self.answer(s, qid, value)
        s = self.engine.trigger_cardiac_arrest(s).session

        s = self.answer(s, "airway_sounds", "clear")
        self.assertEqual(s.phase, Phase.CARDIAC_ARREST)
        self.assertEqual(s.current_letter, Letter.B)

        # A critical finding is still recorded as a threat, the arrest still owns the phase
        s = self.answer(s, "spo2", "", 82)
        self.assertIn("hypoxia", s.threat_ids)
        self.assertEqual(s.phase, Phase.CARDIAC_ARREST)

        s = self.engine.achieve_rosc(s).session
        for qid, value in (("breathing_effort", "normal"), ("breathing_sounds", "clear")):
            s = self.answer(s, qid, value)
        s = self.answer(s, "respiratory_rate", "", 22)
        self.assertEqual(s.phase, Phase.ONGOING)
        self.assertEqual(s.current_letter, Letter.C)

        # Definitive care is kept too
        s = self.engine.set_definitive_diagnosis(s, "Septic Shock").session
        s = self.answer(s, "pulse_quality", "strong")
        self.assertEqual(s.phase, Phase.DEFINITIVE_CARE)

    def test_17_real_boluses_with_measured_hyperglycemia(self):
        """[SAFETY] Measured glucose 25 mmol/L + two prescribed shock boluses -> cerebral edema warning"""
        print("\nTEST 17: Bolus in Hyperglycemia From the Survey")
        s = self.cold_shock_patient()
        s = self.answer(s, "blood_pressure", "", 70, 40)
        s = self.answer(s, "glucose", "", 25)
        self.assertEqual(s.findings_map["glucose"], "very_high")
        self.assertEqual(s.vital_signs.glucose, 25)

        boluses = [i for t in s.threats if t.id in ("cold_shock", "hypotension")
                   for i in t.interventions if "BOLUS" in i.action]
        self.assertEqual(len(boluses), 2)

        s = self.engine.complete_intervention(s, boluses[0].id).session
        self.assertNotIn("bolus_in_hyperglycemia", [a.id for a in s.safety_alerts])
        s = self.engine.complete_intervention(s, boluses[1].id).session
        self.assertIn("bolus_in_hyperglycemia", [a.id for a in s.safety_alerts])
        self.assertEqual(s.fluid_tracker.total_volume_ml, 360)

if __name__ == '__main__':
    unittest.main()
