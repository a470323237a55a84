from datetime import date, datetime, time

def parse_date(value) -> date:
    # "2026-01-20"
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("date must be a YYYY-MM-DD string")
    return date.fromisoformat(value.strip())

def parse_time(value) -> time:
    # "18:00" or "18:00:00"
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError("time must be an HH:MM string")
    return time.fromisoformat(value.strip())

def parse_int(value, default=None):
    # JSON ints or digit strings ("12", "-3"); floats, lists and bools are rejected
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError("value must be an integer")
