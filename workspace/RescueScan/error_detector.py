"""
Fatal error detection logic for RescueScan
"""
import re
from typing import List, Tuple, Dict, Iterable

from utils import truncate

# Severity markers that make a new log line fatal (matched case-insensitively)
FATAL_MARKERS = (
    'fatal error',
    'parse error',
    'uncaught error',
    'syntax error',
)

MESSAGE_LIMIT = 150

_MARKER_RE = re.compile('|'.join(re.escape(m) for m in FATAL_MARKERS), re.IGNORECASE)

# " in /path/file.php on line 3", " in /path/file.php:12", " in bar.php"
_LOCATION_RE = re.compile(
    r'\s+in\s+(?:\S+\s+on\s+line\s+\d+|\S+:\d+|\S*[/\\]\S*|\S+\.\w+)\s*$',
    re.IGNORECASE,
)

_TIMESTAMP_RE = re.compile(r'^\s*\[[^\]]*\]\s*')

_COMPONENT_PATH_RE = re.compile(r'plugins/([^/\s]+)/', re.IGNORECASE)
_COMPONENT_TAG_RE = re.compile(r'Plugin:\s*([a-z0-9\-_]+)', re.IGNORECASE)


def is_fatal(line: str) -> bool:
    return _MARKER_RE.search(line) is not None


def humanize_error(line: str) -> str:
    """Shorten a fatal log line to the part an operator needs to read"""
    match = _MARKER_RE.search(line)
    if match:
        rest = line[match.end():].lstrip(' :\t')
        location = _LOCATION_RE.search(rest)
        if location:
            message = rest[:location.start()].strip()
            if message:
                return truncate(message, MESSAGE_LIMIT)

    stripped = _TIMESTAMP_RE.sub('', line).strip()
    return truncate(stripped, MESSAGE_LIMIT)


def classify(new_lines: Iterable[str], self_identifier: str) -> Tuple[bool, List[str]]:
    """
    Decide whether freshly appended log lines signal a fatal failure.

    Lines mentioning the scanner itself are ignored so that its own noise
    can never be blamed on the component under test.
    """
    messages = []
    for line in new_lines:
        if self_identifier and self_identifier in line:
            continue
        if is_fatal(line):
            messages.append(humanize_error(line))
    return bool(messages), messages


def detect_components_from_log(lines: Iterable[str]) -> List[Dict[str, str]]:
    """Component slugs referenced by stack traces, in first-seen order"""
    slugs = []
    for line in lines:
        line = str(line)
        match = _COMPONENT_PATH_RE.search(line) or _COMPONENT_TAG_RE.search(line)
        if match and match.group(1) not in slugs:
            slugs.append(match.group(1))

    return [
        {'slug': slug, 'reason': 'Detected in recent fatal/warning stack traces.'}
        for slug in slugs
    ]
