# constants.py

# ===============================================
# Load Profile Constants
# ===============================================

HOURS_PER_DAY = 24
HOURS_PER_YEAR = 8760
DAYS_PER_MONTH = 30      # Billing convention: monthly kWh / 30 = daily kWh
DAYS_PER_YEAR = 365

# Relative consumption per weekday (0 = Monday ... 6 = Sunday)
DAY_MULTIPLIERS = {
    0: 0.92,
    1: 0.96,
    2: 1.00,
    3: 1.04,
    4: 1.08,
    5: 1.05,
    6: 0.88,
}
WEEKEND_DAYS = (5, 6)

# Flat shape used when a shop-type template carries no profile (percent per hour)
DEFAULT_PROFILE_PERCENT = [4.17] * HOURS_PER_DAY

DEFAULT_KWH_PER_SQM_MONTH = 50       # Typical retail intensity
SHOP_TYPE_WEEKEND_FACTOR = 0.85      # Shop-type weekend daily kWh relative to weekday

# ===============================================
# Meter Reading Constants
# ===============================================

# A drop larger than this fraction of the previous cumulative reading is a counter wrap
ROLLOVER_DROP_FRACTION = 0.5

STANDARD_INTERVALS_MINUTES = [1, 5, 10, 15, 30, 60, 120, 180, 240]

DEFAULT_VOLTAGE_V = 400              # Three-phase line voltage for current -> power
DEFAULT_POWER_FACTOR = 0.9

# ===============================================
# Profile Validation Constants
# ===============================================

ZERO_EPSILON = 1e-9
OUTLIER_MEDIAN_MULTIPLE = 1000
OUTLIER_ABSOLUTE_CEILING = 10000
FLAT_LINE_CV_THRESHOLD = 0.05
MIN_DATA_POINTS = 48

OUTLIER_DAY_MIN_DAYS = 20
OUTLIER_DAY_IQR_MULTIPLE = 3
OUTLIER_DAY_MEDIAN_MULTIPLE = 5

SITE_OUTAGE_THRESHOLD_KW = 75        # Daily site total below this is treated as an outage

# ===============================================
# Solar Constants
# ===============================================

STC_IRRADIANCE = 1000     # W/m² at Standard Test Conditions
STC_TEMPERATURE = 25      # °C
NOCT_IRRADIANCE = 800     # W/m² at Nominal Operating Cell Temperature
NOCT_AMBIENT = 20         # °C
DEFAULT_TRANSPOSITION_FACTOR = 1.08  # GHI -> plane-of-array gain for a typical tilt

PROJECTION_YEARS = 25

# ===============================================
# Battery Constants
# ===============================================

BATTERY_MIN_SOC = 0.10
BATTERY_MAX_SOC = 0.95
BATTERY_INITIAL_SOC = 0.50

# ===============================================
# Financial Constants
# ===============================================

# Month split used for annual blended tariffs in South Africa
LOW_SEASON_MONTHS = 9
HIGH_SEASON_MONTHS = 3
HIGH_SEASON_MONTH_NUMBERS = (6, 7, 8)
