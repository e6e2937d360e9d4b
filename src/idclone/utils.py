from datetime import UTC, datetime


def is_email(value: str) -> bool:
    """Loose email check used by the login and target forms."""
    return "@" in value and "." in value


def now() -> datetime:
    return datetime.now(UTC)
