"""
Application constants.
Thresholds, windows and defaults shared by the gamification engines.
"""

# Environment defaults
DEFAULT_DATABASE_URL = "sqlite:///./touchwood.db"
DEFAULT_API_KEY = "change-me"
DEFAULT_LOG_DIRECTORY = "./logs"
DEFAULT_LOG_FILE = "touchwood.log"
DEFAULT_DAY_START_HOUR = 0
DEFAULT_FLUSH_INTERVAL_SECONDS = 30

# Persisted state keys (one record per entity kind)
KEY_COMPLETION_EVENTS = "completion_events"
KEY_PROGRESS = "progress"
KEY_DAILY_CHALLENGES = "daily_challenges"
KEY_ACHIEVEMENTS = "achievements"
KEY_SEASONAL_EVENTS = "seasonal_events"
KEY_MOOD_ENTRIES = "mood_entries"
KEY_SOCIAL = "social"
KEY_CUSTOM_RITUALS = "custom_rituals"
KEY_WOOD_STYLES = "wood_styles"

# State envelope version
STATE_SCHEMA_VERSION = 1

# Mood scale
MOOD_MIN = 1
MOOD_MAX = 5

# Streak milestones fire on multiples of these
STREAK_MILESTONE_DIVISORS = (7, 30, 100)

# Undelivered notifications kept for polling clients
NOTIFICATION_BUFFER_SIZE = 200

# Daily challenges
CHALLENGES_PER_DAY_MIN = 2
CHALLENGES_PER_DAY_MAX = 3
MORNING_WINDOW = (6, 12)   # [start, end)
EVENING_WINDOW = (18, 24)  # [start, end)
CHALLENGE_KIND_MORNING = "morning"
CHALLENGE_KIND_EVENING = "evening"

# Achievements
PERFECT_WEEK_DAYS = 7
RECENT_MOOD_WINDOW_DAYS = 7

# Levels
POINTS_PER_LEVEL = 100

# Mood analytics
TREND_MIN_SAMPLES = 3
TREND_THRESHOLD = 0.3
WEEKLY_WINDOW_DAYS = 7
MONTHLY_WINDOW_DAYS = 30
MOOD_STREAK_MIN_LENGTH = 3
MOOD_STREAK_MAX_GAP_DAYS = 1
POSITIVE_STREAK_AVERAGE = 4.0
NEUTRAL_STREAK_AVERAGE = 3.0
POSITIVE_TREND_AVERAGE = 4.0
CONCERN_TREND_AVERAGE = 2.5
INSIGHT_MIN_TREND_POINTS = 2
IMPROVEMENT_RATE_SAMPLE = 10

# Time-of-day buckets (inclusive hour ranges); night wraps past midnight
TIME_OF_DAY_BUCKETS = (
    ("morning", 5, 11),
    ("afternoon", 12, 17),
    ("evening", 18, 21),
    ("night", 22, 4),
)
