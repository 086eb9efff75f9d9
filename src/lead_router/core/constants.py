"""Scoring, ranking and gating constants shared across the engine."""

# Scores
SCORE_MAX = 100
SCORE_MIN = 0
SCORE_EPSILON = 0.01  # Scores closer than this are treated as a tie

# Ranks
RANK_TOP = 1
RANK_INELIGIBLE = 999
MAX_ALTERNATIVES = 3

# Confidence gap thresholds (normalized points between rank 1 and rank 2)
CONFIDENCE_HIGH_GAP = 10
CONFIDENCE_MEDIUM_GAP = 5

# Gating defaults
DEFAULT_REQUIRE_AVAILABILITY = True
DEFAULT_EXCLUDE_HIGH_BURNOUT = False
DEFAULT_MAX_BURNOUT_SCORE = 90
DEFAULT_DAILY_LEAD_THRESHOLD = 20

# Explanation thresholds
MAX_PRIMARY_REASONS = 3
MAX_SECONDARY_FACTORS = 3
SECONDARY_MIN_CONTRIBUTION = 1
LOW_INDUSTRY_EXPERIENCE = 30
HIGH_BURNOUT_WARNING = 75

# Time windows
CONVERSION_WINDOW_DAYS = 90
AVG_DEAL_WINDOW_DAYS = 180
HOT_STREAK_HOURS = 168
HOT_STREAK_MIN_WINS = 3
BURNOUT_WIN_DECAY_HOURS = 336
BURNOUT_ACTIVITY_DECAY_HOURS = 168

# Weight validation
WEIGHT_TOTAL = 100
WEIGHT_TOLERANCE_MIN = 98
WEIGHT_TOLERANCE_MAX = 102
WEIGHT_EPSILON = 0.01  # Totals this close to 100 are left as configured

# Explanation structure version, bumped whenever the serialized shape changes
EXPLANATION_SCHEMA_VERSION = 1
