"""Centralized constants for TrustGate session trust and risk evaluation."""

from datetime import timedelta


# ===== SESSION LIFECYCLE =====
class SessionLimits:
    MAX_CONCURRENT_SESSIONS = 5
    STANDARD_ABSOLUTE_TIMEOUT = timedelta(hours=24)
    REMEMBER_ME_TIMEOUT = timedelta(days=30)
    STANDARD_IDLE_TIMEOUT = timedelta(hours=2)
    ACTIVITY_RETENTION = timedelta(days=90)
    STEP_UP_WINDOW = timedelta(minutes=5)
    EXPIRY_WARNING = timedelta(minutes=15)
    HISTORY_LIMIT = 50


# ===== TRUST LEVELS =====
class TrustConstants:
    UNTRUSTED = 0
    RECOGNIZED = 1
    HIGHLY_TRUSTED = 2

    RECOGNIZED_MIN_LOGINS = 3
    RECOGNIZED_MIN_DAYS = 7
    HIGHLY_TRUSTED_MIN_LOGINS = 10
    HIGHLY_TRUSTED_MIN_DAYS = 30

    # Weighted suspicion heuristic
    SUSPICION_WEIGHT_RAPID_LOCATION_CHANGE = 3
    SUSPICION_WEIGHT_NEW_DEVICE_AND_LOCATION = 2
    SUSPICION_WEIGHT_FAILED_ATTEMPTS = 2
    SUSPICION_WEIGHT_VPN = 1
    SUSPICION_FAILED_ATTEMPTS_MIN = 3
    SUSPICION_THRESHOLD = 4


# ===== RISK SCORING =====
class RiskConstants:
    SCORE_MIN = 0.0
    SCORE_MAX = 100.0

    # Level thresholds (weighted total)
    LEVEL_CRITICAL = 70.0
    LEVEL_HIGH = 50.0
    LEVEL_MEDIUM = 25.0

    # Decision thresholds
    BLOCK_THRESHOLD = 80.0
    STEP_UP_THRESHOLD = 60.0
    NOTIFY_THRESHOLD = 40.0

    IMPOSSIBLE_TRAVEL_WINDOW = timedelta(hours=2)
    FAILED_ATTEMPTS_WINDOW = timedelta(hours=24)
    RAPID_LOGIN_WINDOW = timedelta(minutes=10)
    RAPID_LOGIN_MIN_SESSIONS = 3
    UNUSUAL_TIME_MIN_SAMPLES = 5
    UNUSUAL_TIME_MAX_SAMPLES = 20
    UNUSUAL_TIME_HOUR_DELTA = 6
    TOP_FACTORS = 5


# ===== SESSION COMPARISON & CONFLICTS =====
class ConflictConstants:
    SIMILARITY_START = 100
    PENALTY_DEVICE_NAME = 15
    PENALTY_DEVICE_TYPE = 10
    PENALTY_COUNTRY = 20
    PENALTY_CITY = 10
    PENALTY_IP = 15
    PENALTY_BROWSER = 10
    PENALTY_OS = 10
    PENALTY_TRUST_GAP = 10
    TRUST_GAP_MIN = 2

    DUPLICATE_SIMILARITY = 90
    SHARED_ACCOUNT_SIMILARITY = 50
    LOCATION_MISMATCH_WINDOW = timedelta(hours=1)

    MULTIPLE_COUNTRIES_MAX = 2

    # Takeover severity points
    TAKEOVER_NEW_DEVICE_COUNTRY = 30
    TAKEOVER_YOUNG_UNTRUSTED = 25
    TAKEOVER_IP_RANGE = 20
    TAKEOVER_SUSPICIOUS_FLAG = 30
    TAKEOVER_LOGIN_HOUR = 10
    TAKEOVER_YOUNG_AGE = timedelta(hours=1)
    TAKEOVER_LOGIN_HOUR_DELTA = 6

    SEVERITY_CRITICAL = 70
    SEVERITY_HIGH = 50
    SEVERITY_MEDIUM = 30

    # Behavioural pattern anomalies
    BEHAVIOR_MAX_DEVICES = 5
    BEHAVIOR_MAX_LOCATIONS = 3
    BEHAVIOR_SUSPICIOUS_RATE = 0.3


# ===== CONTEXT & FINGERPRINTS =====
class ContextConstants:
    UNKNOWN_IP = "unknown"
    UNKNOWN_DEVICE_NAME = "Unknown Device"
    LOCAL_COUNTRY = "Local"
    LOCAL_CITY = "Localhost"
    GEOLOCATION_FIELDS = "status,country,regionName,city,timezone,isp"
    GEOLOCATION_MIN_CACHE_TTL_SECONDS = 3600

    FINGERPRINT_MATCH_THRESHOLD = 70
    FINGERPRINT_IDENTICAL = 100


# ===== NOTIFICATIONS =====
class NotificationConstants:
    EVENT_LOG_SIZE = 100


# ===== BACKGROUND WORKERS =====
class WorkerConstants:
    QUEUE_SIZE = 10000
    FLUSH_TIMEOUT_SECONDS = 5.0
    QUEUE_GET_TIMEOUT = 1.0
