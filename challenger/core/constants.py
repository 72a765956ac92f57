"""Global constants for the challenger application."""

# Firestore limits a write batch to 500 operations
FIRESTORE_BATCH_LIMIT = 400

# Collections
USERS = "users"
TEAMS = "teams"
SCRIMS = "scrims"
SCRIM_CHATS = "scrim_chats"
NOTIFICATIONS = "notifications"
TOURNAMENTS = "tournaments"
MATCHES = "matches"
GAMES = "games"
SETTINGS = "settings"

# Retention defaults (days)
SCRIM_RETENTION_DAYS = 90
TOURNAMENT_RETENTION_DAYS = 365

# Daily sweep time (UTC)
SWEEP_SCHEDULE_HOUR = 2
SWEEP_SCHEDULE_MINUTE = 0

# Referee codes
REFEREE_CODE_LENGTH = 6
REFEREE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

EVENT_QUEUE_SIZE = 1000
