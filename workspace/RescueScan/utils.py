"""
Utility functions for RescueScan
"""
import hashlib
import os


def component_id(file: str) -> str:
    """Stable identifier of a component: md5 of its file path"""
    return hashlib.md5(file.encode('utf-8')).hexdigest()


def is_self_component(file: str, self_identifier: str) -> bool:
    """True when the file belongs to the scanner's own component"""
    if not self_identifier:
        return False
    return file.split('/', 1)[0] == self_identifier


def truncate(text: str, limit: int = 150, marker: str = '...') -> str:
    """Cut text to limit characters, adding marker when something was cut"""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + marker


def format_duration(seconds: float) -> str:
    """Format a duration for operator output"""
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f} s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


def format_status(status: str) -> str:
    """Format a component status with an emoji marker"""
    markers = {
        'pending': '⚪ pending',
        'scanning': '🔵 scanning',
        'healthy': '🟢 healthy',
        'conflict': '🔴 conflict',
    }
    return markers.get(status, status)


def sanitize_path(path: str) -> str:
    """Sanitize path for display (hide absolute paths in reports)"""
    # Replace common home directory paths with ~
    home_path = os.path.expanduser("~")
    if path.startswith(home_path):
        return path.replace(home_path, "~")
    return path
