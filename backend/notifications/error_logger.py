"""
Error logging utility for the notification engine.

Writes one timestamped report file per failure so batch jobs (fan-out,
expiry sweep) can keep going and still leave a trace to debug from.
"""

import json
import os
import uuid
from datetime import datetime
from typing import Any


def _log_dir() -> str:
    return os.getenv(
        "NOTIFICATION_LOG_DIR", os.path.join(os.path.dirname(__file__), "logs")
    )


def log_notification_error(
    error_type: str, error_message: str, context: dict[str, Any] | None = None
) -> str:
    """
    Log a notification error to a timestamped file.

    Args:
        error_type: Type of error ('matching', 'dispatch', 'sending', 'sweep')
        error_message: The error message
        context: Optional dictionary with additional context (property_id, user_id, etc.)

    Returns:
        Path to the log file created
    """
    log_dir = _log_dir()
    os.makedirs(log_dir, exist_ok=True)

    # Parallel workers can fail within the same microsecond
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    suffix = uuid.uuid4().hex[:6]
    filename = os.path.join(
        log_dir, f"notification_error_{error_type}_{timestamp}_{suffix}.txt"
    )

    with open(filename, "w", encoding="utf-8") as f:
        f.write(f"Notification Error Report - {datetime.now()}\n")
        f.write("=" * 60 + "\n\n")
        f.write(f"Error Type: {error_type}\n")
        f.write(f"Error Message: {error_message}\n\n")

        if context:
            f.write("Context:\n")
            f.write("-" * 60 + "\n")
            for key, value in context.items():
                if isinstance(value, (dict, list)):
                    value = json.dumps(value, indent=2, default=str)
                f.write(f"{key}: {value}\n")

    return filename
