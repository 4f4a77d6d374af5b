"""
Scan history for RescueScan
Finished and running passes are kept in one JSON file so that the next
pass (or the status command) can see what happened before
"""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import List, Dict, Optional, Any

FINISHED_STATUSES = ('done', 'errored')


@dataclass
class ScanRecord:
    """One scan pass as stored in the history"""
    scan_id: str
    timestamp: str
    scope: str
    mode: str
    status: str  # 'running', 'done', 'errored'
    components: List[Dict[str, Any]] = field(default_factory=list)
    diagnosis: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    scan_duration: float = 0
    report_files: Dict[str, str] = field(default_factory=dict)  # format -> file path

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScanRecord':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def conflict_files(self) -> List[str]:
        return [c['file'] for c in self.components if c.get('status') == 'conflict']


class ScanHistoryManager:
    """Keeps scan records and the per-scan report directories"""

    def __init__(self, data_dir: str = "/app/data/rescuescan/scans"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.history_file = self.data_dir / "scan_history.json"
        self.scans: Dict[str, ScanRecord] = self._load_history()

    def _load_history(self) -> Dict[str, ScanRecord]:
        if not self.history_file.exists():
            return {}
        try:
            with open(self.history_file, 'r') as f:
                data = json.load(f)
            records = [ScanRecord.from_dict(scan) for scan in data.get('scans', [])]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            print(f"⚠️  Error loading scan history: {e}")
            return {}
        return {record.scan_id: record for record in records}

    def save_scan(self, scan_record: ScanRecord):
        self.scans[scan_record.scan_id] = scan_record
        self._save_history()

    def _save_history(self):
        """Rewrite the history file in one step"""
        data = {'scans': [asdict(scan) for scan in self.get_all_scans()]}
        try:
            fd, tmp_path = tempfile.mkstemp(prefix='.scan_history.', dir=str(self.data_dir))
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.history_file)
        except (OSError, TypeError) as e:
            print(f"⚠️  Error saving scan history: {e}")

    def get_scan(self, scan_id: str) -> Optional[ScanRecord]:
        return self.scans.get(scan_id)

    def get_all_scans(self) -> List[ScanRecord]:
        """All records, newest first"""
        return sorted(self.scans.values(), key=lambda x: x.timestamp, reverse=True)

    def get_scans_for_scope(self, scope: str) -> List[ScanRecord]:
        """Records of one host instance, newest first"""
        return [scan for scan in self.get_all_scans() if scan.scope == scope]

    def last_finished_scan(self, scope: str) -> Optional[ScanRecord]:
        for scan in self.get_scans_for_scope(scope):
            if scan.is_finished:
                return scan
        return None

    def create_scan_directory(self, scan_id: str) -> Path:
        scan_dir = self.data_dir / scan_id
        scan_dir.mkdir(exist_ok=True)
        return scan_dir

    def cleanup_old_scans(self, max_scans: int = 50) -> int:
        """Drop finished records (and their reports) beyond the newest max_scans"""
        finished = [scan for scan in self.get_all_scans() if scan.is_finished]
        stale = finished[max_scans:]
        if not stale:
            return 0

        for scan in stale:
            scan_dir = self.data_dir / scan.scan_id
            if scan_dir.is_dir():
                shutil.rmtree(scan_dir)
            del self.scans[scan.scan_id]

        self._save_history()
        print(f"🧹 Cleaned up {len(stale)} old scans")
        return len(stale)
