from datetime import timedelta
import re

_UNITS = {
    "ns": timedelta(microseconds=0.001),
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}

_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration in the format used by Kubernetes resources, e.g. `30s`, `5m` or `1h30m`.

    Raises:
        ValueError: If the value is not a valid duration.
    """

    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if text == "0":
        return timedelta()

    result = timedelta()
    pos = 0
    for match in _PART.finditer(text):
        if match.start() != pos:
            break
        result += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration: {value!r}")

    return result
