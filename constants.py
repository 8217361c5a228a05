from enum import Enum
VERSION = "1.0.0"

class FluidType(Enum):
    RL = "Ringer's Lactate"        # Balanced crystalloid, default resuscitation fluid
    NS = "Normal Saline 0.9%"      # Neonates (lactate metabolism immature)

class FLUID_CONSTANTS:
    BOLUS_ML_PER_KG = 10.0          # Every shock bolus, reassess after each
    CAUTIOUS_BOLUS_ML_PER_KG = 5.0  # Heart failure signs already present
    REFRACTORY_ML_PER_KG = 60.0     # Fluid-refractory shock threshold
    EXCESSIVE_BOLUS_COUNT = 3
    HYPERGLYCEMIA_BOLUS_COUNT = 2   # Cerebral edema risk in DKA
    BOLUS_REASSESS_SECONDS = 600

class GLUCOSE_CONSTANTS:
    MGDL_PER_MMOL = 18.0
    LOW_MMOL = 3.5        # < 3.5 = hypoglycemia
    NORMAL_MAX_MMOL = 11.0
    ELEVATED_MAX_MMOL = 14.0
    HIGH_MAX_MMOL = 20.0  # > 20 = very high

class LACTATE_CONSTANTS:
    NORMAL_MAX = 2.0
    HIGH = 4.0            # >= 4 mmol/L = hypoperfusion

class SPO2_CONSTANTS:
    TARGET = 94
    CRITICAL = 90

class CRT_CONSTANTS:
    NORMAL_MAX_SEC = 2.0
    DELAYED_MAX_SEC = 4.0

class TEMPERATURE_CONSTANTS:
    HYPOTHERMIA_C = 36.0
    FEVER_C = 38.0
    HIGH_FEVER_C = 39.5

class AGE_CONSTANTS:
    NEONATE_MAX_DAYS = 28
    INFANT_MAX_MONTHS = 12
    CHILD_MAX_YEARS = 12
    ADOLESCENT_MAX_YEARS = 18
    DEFAULT_CHILD_YEARS = 5  # SBP floor when age text has no number
