"""
Snapshot persistence for RescueScan
Keeps the pre-scan enabled set so a scan can be restored after a crash
"""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Iterable, Optional

from models import Snapshot


class SnapshotStore:
    """Single JSON record with expiry, stored under a well-known key"""

    def __init__(self, data_dir: str, key: str = 'conflict_scan_state', ttl: int = 3600):
        self.data_dir = Path(data_dir)
        self.key = key
        self.ttl = ttl

    @property
    def path(self) -> Path:
        return self.data_dir / f"{self.key}.json"

    def save(self, enabled: Iterable[str]) -> bool:
        """Store the enabled set unless a live snapshot already exists"""
        if self.load() is not None:
            return False

        record = {
            'enabled': list(dict.fromkeys(enabled)),
            'created_at': time.time(),
            'ttl': self.ttl,
        }
        self.data_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.key}.", dir=str(self.data_dir))
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(record, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return True

    def load(self) -> Optional[Snapshot]:
        """The live snapshot, or None when missing, expired or unreadable"""
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            snapshot = Snapshot(
                enabled=[str(f) for f in data['enabled']],
                created_at=float(data['created_at']),
                ttl=int(data.get('ttl', self.ttl)),
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            print(f"⚠️  Ignoring unreadable snapshot {self.path}: {e}")
            return None

        if snapshot.is_expired():
            return None
        return snapshot

    def clear(self) -> bool:
        """Delete the stored snapshot; False when there was none"""
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return False
        return True
