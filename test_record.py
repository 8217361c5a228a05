import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from engine import ResusEngine
from models import FluidTracker
from record import export_clinical_record

T0 = datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)

class TestClinicalRecord(unittest.TestCase):

    def setUp(self):
        self.engine = ResusEngine(clock=lambda: T0)
        s = self.engine.create_session(18, "5 years")
        s = self.engine.start_quick_assessment(s).session
        self.session = self.engine.answer_quick_assessment(s, "sick").session

    def test_01_header_and_sections(self):
        print("\nTEST 1: Record Layout")
        s = self.engine.answer_primary_survey(self.session, "avpu", "alert").session
        text = export_clinical_record(s)
        self.assertIn("ResusGPS", text)
        self.assertIn("Weight: 18 kg", text)
        self.assertIn("Age: 5 years", text)
        self.assertIn("FINDINGS", text)
        self.assertIn("EVENT LOG", text)
        self.assertIn("avpu", text)
        self.assertNotIn("FLUID RESUSCITATION", text)

    def test_02_fluid_section_when_boluses_given(self):
        print("\nTEST 2: Fluid Resuscitation Section")
        s = replace(self.session, fluid_tracker=FluidTracker(bolus_count=2, total_volume_ml=360,
                                                             total_volume_per_kg=20))
        text = export_clinical_record(s)
        self.assertIn("FLUID RESUSCITATION", text)
        self.assertIn("Boluses given: 2", text)
        self.assertIn("360 mL (20.0 mL/kg)", text)

    def test_03_doses_follow_current_weight(self):
        print("\nTEST 3: Doses Rendered at Current Weight")
        s = self.engine.answer_primary_survey(self.session, "avpu", "unresponsive").session
        self.assertIn("unresponsive_airway", s.threat_ids)
        s = self.engine.trigger_cardiac_arrest(s).session
        self.assertIn("0.18 mg IV/IO", export_clinical_record(s))

        heavier = self.engine.update_patient_info(s, 200, "5 years").session
        self.assertIn("(MAX DOSE)", export_clinical_record(heavier))

    def test_04_unknown_patient(self):
        print("\nTEST 4: Unknown Weight and Age")
        s = self.engine.create_session()
        text = export_clinical_record(s)
        self.assertIn("Weight: unknown", text)
        self.assertIn("Age: unknown", text)
        self.assertIn("None recorded", text)

    def test_05_timeline_elapsed(self):
        print("\nTEST 5: Event Timestamps as mm:ss")
        ticks = iter([T0 + timedelta(seconds=n * 75) for n in range(20)])
        engine = ResusEngine(clock=lambda: next(ticks))
        s = engine.create_session(18, "5 years")
        s = engine.start_quick_assessment(s).session
        s = engine.answer_quick_assessment(s, "sick").session
        text = export_clinical_record(s)
        self.assertIn("01:15", text)
        self.assertIn("02:30", text)

if __name__ == '__main__':
    unittest.main()
