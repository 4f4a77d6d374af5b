"""
Bounded reads from the end of a growing error log
"""
import os
import re
from typing import List, Iterable, Optional

REDACT_PATTERNS = [
    re.compile(r'password\s*=\s*[^\s]+', re.IGNORECASE),
    re.compile(r'pass\s*=\s*[^\s]+', re.IGNORECASE),
    re.compile(r'secret\s*=\s*[^\s]+', re.IGNORECASE),
    re.compile(r'token\s*=\s*[^\s]+', re.IGNORECASE),
    re.compile(r'key\s*=\s*[^\s]+', re.IGNORECASE),
]


def tail(path: str, max_lines: int = 200, max_bytes: int = 200000) -> List[str]:
    """
    Return the last max_lines lines of path, most recent last.

    At most max_bytes are read from the end of the file. A missing,
    unreadable or empty file gives an empty list.
    """
    if not path or max_lines <= 0 or max_bytes <= 0:
        return []

    try:
        with open(path, 'rb') as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            if size == 0:
                return []

            chunk = min(size, max_bytes)
            f.seek(size - chunk)
            data = f.read(chunk)
    except OSError:
        return []

    lines = data.decode('utf-8', errors='replace').split('\n')

    # Started mid-line: the first entry is a fragment
    if size > chunk:
        lines = lines[1:]
    if lines and lines[-1] == '':
        lines = lines[:-1]

    return lines[-max_lines:]


def log_size(path: Optional[str]) -> Optional[int]:
    """Current size of the log in bytes, None when it cannot be read"""
    if not path:
        return None
    try:
        return os.path.getsize(path)
    except OSError:
        return None


def read_since(path: str, offset: int, max_lines: int = 200,
               max_bytes: int = 200000) -> Optional[List[str]]:
    """
    Lines appended to path after byte offset, most recent last.

    Reads at most max_bytes (the newest ones when more were appended).
    Returns None when the file shrank below offset (rotated or truncated).
    """
    if not path or max_lines <= 0 or max_bytes <= 0:
        return []

    try:
        with open(path, 'rb') as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            if size < offset:
                return None
            start = max(offset, size - max_bytes)
            f.seek(start)
            data = f.read(size - start)
    except OSError:
        return []

    lines = data.decode('utf-8', errors='replace').split('\n')
    if start > offset:
        lines = lines[1:]
    if lines and lines[-1] == '':
        lines = lines[:-1]

    return lines[-max_lines:]


def new_lines(baseline: Iterable[str], after: Iterable[str]) -> List[str]:
    """Lines of after that are not in baseline, in after's order"""
    seen = set(baseline)
    return [line for line in after if line not in seen]


def sanitize_log_lines(lines: Iterable[str]) -> List[str]:
    """Redact credentials before log lines leave the process"""
    clean = []
    for line in lines:
        line = str(line)
        for pattern in REDACT_PATTERNS:
            line = pattern.sub('[redacted]', line)
        clean.append(line)
    return clean
