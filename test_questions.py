import unittest

from age_profiles import airway_position, get_age_category, get_age_profile, get_vital_ranges, parse_age_years
from models import AgeCategory, InputType, Letter, Severity
from questions import (
    PRIMARY_SURVEY_QUESTIONS,
    get_question,
    interpret_blood_pressure,
    interpret_crt,
    interpret_glucose,
    interpret_heart_rate,
    interpret_respiratory_rate,
    interpret_spo2,
    interpret_temperature,
    questions_for,
    validate_numeric,
)

class TestAgeProfiles(unittest.TestCase):

    def test_01_age_buckets(self):
        print("\nTEST 1: Free-Text Age Buckets")
        cases = {
            "2 days": AgeCategory.NEONATE,
            "3 weeks": AgeCategory.NEONATE,
            "newborn": AgeCategory.NEONATE,
            "6 months": AgeCategory.INFANT,
            "6 mo": AgeCategory.INFANT,
            "5 years": AgeCategory.CHILD,
            "18-month": AgeCategory.CHILD,
            "5": AgeCategory.CHILD,
            "14 yr": AgeCategory.ADOLESCENT,
            "35 years": AgeCategory.ADULT,
        }
        for text, expected in cases.items():
            self.assertEqual(get_age_category(text), expected, text)

    def test_02_unparseable_defaults_to_child(self):
        print("\nTEST 2: Unparseable Age -> child")
        for text in (None, "", "unknown", "toddler"):
            self.assertEqual(get_age_category(text), AgeCategory.CHILD)
        self.assertIsNone(parse_age_years("unknown"))
        self.assertAlmostEqual(parse_age_years("2 years 6 months"), 2.5, places=1)

    def test_03_hypotension_floor(self):
        print("\nTEST 3: PALS Systolic Floor")
        self.assertEqual(get_vital_ranges(get_age_profile("5 years")).sbp_min, 80)
        self.assertEqual(get_vital_ranges(get_age_profile("10 years")).sbp_min, 90)
        self.assertEqual(get_vital_ranges(get_age_profile("toddler")).sbp_min, 80)
        self.assertEqual(get_vital_ranges(get_age_profile("2 days")).sbp_min, 60)

    def test_04_airway_position(self):
        print("\nTEST 4: Airway Position by Age")
        self.assertIn("NEUTRAL", airway_position(get_age_profile("4 months")))
        self.assertIn("SNIFFING", airway_position(get_age_profile("5 years")))
        self.assertIn("HEAD-TILT", airway_position(get_age_profile("16 years")))

class TestQuestionCatalog(unittest.TestCase):

    def test_01_catalog_shape(self):
        print("\nTEST 1: Catalog Per Letter")
        self.assertEqual(set(PRIMARY_SURVEY_QUESTIONS), set(Letter))
        self.assertEqual(questions_for(Letter.A)[0].id, "avpu")
        ids = [q.id for qs in PRIMARY_SURVEY_QUESTIONS.values() for q in qs]
        self.assertEqual(len(ids), len(set(ids)))
        for qs in PRIMARY_SURVEY_QUESTIONS.values():
            for q in qs:
                if q.input_type == InputType.SELECT:
                    self.assertTrue(q.options, q.id)
                elif q.input_type == InputType.NUMBER:
                    self.assertIsNotNone(q.number_config, q.id)
                else:
                    self.assertIsNotNone(q.number_pair_config, q.id)
        self.assertEqual(get_question("blood_pressure").input_type, InputType.NUMBER_PAIR)
        self.assertIsNone(get_question("nope"))

    def test_02_glucose_bands(self):
        print("\nTEST 2: Glucose Interpretation (mmol/L)")
        child = get_age_profile("5 years")
        self.assertEqual(interpret_glucose(3.0, None, child).category, "low")
        self.assertEqual(interpret_glucose(5.5, None, child).category, "normal")
        self.assertIn("99 mg/dL", interpret_glucose(5.5, None, child).label)
        self.assertEqual(interpret_glucose(12.5, None, child).category, "elevated")
        self.assertEqual(interpret_glucose(16.0, None, child).category, "high")
        very_high = interpret_glucose(25.0, None, child)
        self.assertEqual(very_high.category, "very_high")
        self.assertEqual(very_high.severity, Severity.CRITICAL)

    def test_03_age_aware_rates(self):
        print("\nTEST 3: Same Number, Different Meaning by Age")
        neonate, child, adult = get_age_profile("3 days"), get_age_profile("5 years"), get_age_profile("30 years")
        self.assertEqual(interpret_heart_rate(170, None, neonate).category, "normal")
        self.assertEqual(interpret_heart_rate(170, None, child).category, "tachycardia")
        self.assertEqual(interpret_heart_rate(170, None, adult).category, "severe_tachycardia")
        self.assertEqual(interpret_heart_rate(70, None, neonate).category, "severe_bradycardia")
        self.assertEqual(interpret_respiratory_rate(45, None, neonate).category, "normal")
        self.assertEqual(interpret_respiratory_rate(40, None, child).category, "tachypnea")
        self.assertEqual(interpret_respiratory_rate(6, None, child).category, "severe_bradypnea")

    def test_04_fixed_thresholds(self):
        print("\nTEST 4: SpO2, CRT, Temperature, BP")
        child = get_age_profile("5 years")
        self.assertEqual(interpret_spo2(88, None, child).category, "critical")
        self.assertEqual(interpret_spo2(92, None, child).category, "low")
        self.assertIsNone(interpret_spo2(97, None, child).severity)
        self.assertEqual(interpret_crt(2, None, child).category, "normal")
        self.assertEqual(interpret_crt(3, None, child).category, "delayed")
        self.assertEqual(interpret_crt(5, None, child).category, "very_delayed")
        self.assertEqual(interpret_temperature(35.5, None, child).category, "hypothermia")
        self.assertEqual(interpret_temperature(38.0, None, child).category, "fever")
        self.assertEqual(interpret_temperature(39.5, None, child).category, "high_fever")
        self.assertEqual(interpret_blood_pressure(75, 40, child).category, "hypotension")
        self.assertEqual(interpret_blood_pressure(95, 60, child).category, "normal")

    def test_05_numeric_range_validation(self):
        print("\nTEST 5: Catalog Range Guardrails")
        spo2 = get_question("spo2")
        validate_numeric(spo2, 95)
        with self.assertRaises(ValueError):
            validate_numeric(spo2, 130)
        with self.assertRaises(ValueError):
            validate_numeric(spo2, None)
        with self.assertRaises(ValueError):
            validate_numeric(get_question("blood_pressure"), 90, 400)
        validate_numeric(get_question("avpu"), None)

if __name__ == '__main__':
    unittest.main()
