# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file),
see src/tasktrack/config.py. Keep machine-specific values in .env (gitignored).
"""

ENV_VARS = {
    # App / logging
    "TASKTRACK_APP_NAME": "App display name used in log lines (default: tasktrack).",
    "TASKTRACK_LOG_LEVEL": "Console logging level (default: INFO).",
    "TASKTRACK_FILE_LOGGING": "Also write full DEBUG logs to <log_dir>/tasktrack.log (true/false, default: true).",
    # Paths (gitignored)
    "TASKTRACK_DATA_DIR": "Local data directory (default: .local/tasktrack).",
    "TASKTRACK_DATA_PATH": "Snapshot JSON file (default: <data_dir>/data.json).",
    "TASKTRACK_LOG_DIR": "Log directory (default: <data_dir>).",
    # Snapshot storage
    "TASKTRACK_LOCK_RETRIES": "Attempts to take the data file lock before failing (default: 10).",
    "TASKTRACK_LOCK_RETRY_DELAY": "Seconds between lock attempts (default: 0.1).",
    "TASKTRACK_WATCH_DATA_FILE": "Reload the store when another process rewrites the data file (true/false, default: false).",
}
