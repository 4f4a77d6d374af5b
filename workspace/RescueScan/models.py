"""
Data models for RescueScan
"""
import time
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional

from utils import component_id

PENDING = 'pending'
SCANNING = 'scanning'
HEALTHY = 'healthy'
CONFLICT = 'conflict'

SEVERITIES = ('low', 'medium', 'high')


@dataclass
class Component:
    """One togglable unit of the host application"""
    file: str
    name: str = ''
    status: str = PENDING
    error: Optional[str] = None
    id: str = ''

    def __post_init__(self):
        if not self.name:
            self.name = self.file
        if not self.id:
            self.id = component_id(self.file)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanResult:
    """Outcome of probing one component"""
    status: str
    error: Optional[str] = None
    probe_time: float = field(default_factory=time.time)

    @property
    def is_conflict(self) -> bool:
        return self.status == CONFLICT

    @classmethod
    def healthy(cls) -> 'ScanResult':
        return cls(status=HEALTHY)

    @classmethod
    def conflict(cls, message: str) -> 'ScanResult':
        return cls(status=CONFLICT, error=message)

    def to_dict(self) -> Dict[str, Any]:
        data = {'status': self.status}
        if self.error:
            data['message'] = self.error
        return data


@dataclass
class Snapshot:
    """Components that were enabled before the scan started"""
    enabled: List[str]
    created_at: float
    ttl: int

    def is_expired(self, now: float = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.created_at + self.ttl


@dataclass
class Diagnosis:
    """Human-readable explanation of the detected conflicts"""
    summary: str
    recommendation: str
    technical_details: str
    severity: str = 'medium'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RestoreResult:
    """Outcome of restoring the pre-scan component set"""
    ok: bool
    message: str
    restored: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.ok,
            'message': self.message,
            'restored': list(self.restored),
            'failed': dict(self.failed),
        }
