"""
Scan Manager for RescueScan
Request/response surface over the isolation scanner: one scan per scope,
every call answered from the current state
"""

import dataclasses
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Iterable

from config import Config
from error_detector import detect_components_from_log
from log_tail import tail, sanitize_log_lines
from probes import ProbeStrategy
from registry import ComponentRegistry, FolderRegistry, RegistryError
from reporter import ReportGenerator
from scan_history import ScanHistoryManager, ScanRecord
from scanner import IsolationScanner, ScanError, IDLE, ERRORED
from snapshot_store import SnapshotStore
from summarizer import Summarizer
from utils import is_self_component, component_id


def normalize_mode(mode: Optional[str]) -> Optional[str]:
    if mode == 'admin':
        return 'virtual'
    return mode


class ScanManager:
    """Keeps at most one scan pass per scope and drives it step by step"""

    def __init__(self, config: Optional[Config] = None, registry: Optional[ComponentRegistry] = None,
                 summarizer: Optional[Summarizer] = None, store: Optional[SnapshotStore] = None,
                 history: Optional[ScanHistoryManager] = None, probe: Optional[ProbeStrategy] = None):
        self.config = config or Config()
        self.registry = registry or FolderRegistry(self.config.components_dir)
        self.summarizer = summarizer or Summarizer.from_config(self.config)
        self.store = store or SnapshotStore(self.config.data_dir, self.config.snapshot_key,
                                            self.config.snapshot_ttl)
        self.scan_history = history or ScanHistoryManager(str(Path(self.config.data_dir) / 'scans'))
        self.probe_override = probe
        self.scanner: Optional[IsolationScanner] = None
        self.session_lock = threading.RLock()

    def is_scan_running(self) -> bool:
        """Check if a scan pass is currently in progress"""
        with self.session_lock:
            return self.scanner is not None and self.scanner.is_active

    def list_components(self) -> Dict[str, Any]:
        """Components of the current pass, or the enabled ones when no pass exists"""
        with self.session_lock:
            if self.scanner is not None and self.scanner.state != IDLE and self.scanner.components:
                return {
                    'success': True,
                    'scan_id': self.scanner.scan_id,
                    'components': [c.to_dict() for c in self.scanner.components],
                }

            try:
                entries = self.registry.list_components()
            except RegistryError as e:
                return {'success': False, 'error': f"Registry unavailable: {e}"}

            components = [
                {
                    'id': component_id(entry.file),
                    'file': entry.file,
                    'name': entry.name,
                    'status': 'pending',
                    'error': None,
                }
                for entry in entries
                if entry.enabled and not is_self_component(entry.file, self.config.self_identifier)
            ]
            if self.config.verbose:
                print(f"Found {len(components)} enabled components")
            return {'success': True, 'components': components}

    def start_scan(self, mode: Optional[str] = None, skip: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Start a new pass (only if no other pass is running)"""
        with self.session_lock:
            if self.is_scan_running():
                return {
                    'error': 'Another scan is already running',
                    'current_scan_id': self.scanner.scan_id,
                }

            mode = normalize_mode(mode) or self.config.mode
            try:
                self.scanner = self._build_scanner(mode)
            except ValueError as e:
                return {'error': str(e)}

            if skip is None:
                skip = self._resume_skip()

            ok = self.scanner.start(skip=skip)
            self._record()

            if not ok:
                return {
                    'success': False,
                    'scan_id': self.scanner.scan_id,
                    'status': self.scanner.state,
                    'error': self.scanner.error,
                }

            return {
                'success': True,
                'scan_id': self.scanner.scan_id,
                'status': self.scanner.state,
                'mode': self.scanner.mode,
                'components': [c.to_dict() for c in self.scanner.components],
                'skipped': list(self.scanner.skipped),
                'message': 'Environment prepared.',
            }

    def probe(self, file: Optional[str] = None, mode: Optional[str] = None) -> Dict[str, Any]:
        """Probe one component of the running pass"""
        with self.session_lock:
            if self.scanner is None:
                return {'error': 'No scan has been started'}

            mode = normalize_mode(mode)
            if mode and mode != self.scanner.mode:
                return {'error': f"Scan {self.scanner.scan_id} runs in {self.scanner.mode} mode, not {mode}"}

            try:
                result = self.scanner.probe(file)
            except ScanError as e:
                return {'error': str(e)}

            self._record()
            response = result.to_dict()
            response['state'] = self.scanner.state
            if self.scanner.state == ERRORED:
                response['error'] = self.scanner.error
            return response

    def analyze(self, conflicts: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
        """Diagnosis for the given conflicts, or for the ones the pass found"""
        with self.session_lock:
            if self.scanner is None:
                if conflicts is None:
                    return {'error': 'No scan has been started'}
                return {'success': True, 'diagnosis': self.summarizer.summarize(conflicts).to_dict()}

            try:
                diagnosis = self.scanner.analyze(conflicts)
            except ScanError as e:
                return {'error': str(e)}

            self._record()
            return {'success': True, 'diagnosis': diagnosis.to_dict(), 'state': self.scanner.state}

    def restore(self, exclude: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Re-enable the pre-scan components, minus exclude"""
        with self.session_lock:
            if self.scanner is None:
                # Nothing in memory: a snapshot left by a crashed process can still be restored
                self.scanner = self._build_scanner(self.config.mode)

            try:
                result = self.scanner.restore(exclude)
            except ScanError as e:
                return {'error': str(e)}

            self._record()
            response = result.to_dict()
            response['state'] = self.scanner.state
            if self.scanner.error and not result.ok:
                response['error'] = self.scanner.error
            return response

    def get_current_status(self) -> Dict[str, Any]:
        """Get current scan status"""
        with self.session_lock:
            if self.scanner is None or self.scanner.state == IDLE:
                snapshot = self.store.load()
                return {
                    'status': 'idle',
                    'is_running': False,
                    'snapshot_pending': snapshot is not None,
                    'message': 'No scan running',
                }

            status = self.scanner.report()
            status['status'] = self.scanner.state
            status['is_running'] = self.scanner.is_active
            return status

    def suspects(self, max_lines: int = 200) -> Dict[str, Any]:
        """Components named by recent stack traces, without touching the host"""
        lines = sanitize_log_lines(tail(self.config.log_path, max_lines, max_lines * 1000))
        found = detect_components_from_log(lines)

        try:
            names = {entry.file.split('/', 1)[0]: entry.name for entry in self.registry.list_components()}
        except RegistryError:
            names = {}
        for suspect in found:
            suspect['name'] = names.get(suspect['slug'], suspect['slug'])

        return {
            'suspects': found,
            'log_path': self.config.log_path,
            'log_tail': lines[-50:],
        }

    def draft_email(self, issue: str = '') -> Dict[str, Any]:
        """Draft an email to the developer of the conflicting component(s)"""
        with self.session_lock:
            if self.scanner is not None and self.scanner.conflicts():
                conflicts = self.scanner.conflicts()
            else:
                last = self.scan_history.last_finished_scan(self.config.scope)
                conflicts = [
                    {'name': c['name'], 'file': c['file'], 'error': c.get('error') or ''}
                    for c in (last.components if last else []) if c.get('status') == 'conflict'
                ]

        log_excerpt = sanitize_log_lines(tail(self.config.log_path, 80, 120000))
        text, source = self.summarizer.draft_email(issue, conflicts, log_excerpt)
        return {'status': 'ok', 'email': text, 'source': source}

    def _build_scanner(self, mode: str) -> IsolationScanner:
        config = self.config
        if mode != config.mode:
            config = dataclasses.replace(config, mode=mode)
        return IsolationScanner(config, self.registry, self.store, self.summarizer,
                                probe=self.probe_override)

    def _resume_skip(self) -> List[str]:
        if self.config.resume_policy != 'resume':
            return []
        last = self.scan_history.last_finished_scan(self.config.scope)
        if last is None:
            return []
        if last.conflict_files:
            print(f"Resuming after {', '.join(last.conflict_files)} (left disabled)")
        return last.conflict_files

    def _record(self):
        """Persist the pass to the scan history; write a report once it is finished"""
        scanner = self.scanner
        if scanner is None or scanner.scan_id is None:
            return

        report = scanner.report()
        record = self.scan_history.get_scan(scanner.scan_id) or ScanRecord(
            scan_id=scanner.scan_id,
            timestamp=datetime.now().isoformat(),
            scope=self.config.scope,
            mode=scanner.mode,
            status='running',
        )
        record.components = report['components']
        record.diagnosis = report['diagnosis']
        record.error = report['error']
        record.scan_duration = report['scan_duration']

        if scanner.is_terminal:
            record.status = scanner.state
            scan_dir = self.scan_history.create_scan_directory(scanner.scan_id)
            try:
                report_path = ReportGenerator(self.config).generate_report(report, str(scan_dir))
                record.report_files = {self.config.report_format: report_path}
            except OSError as e:
                print(f"⚠️  Could not write report for {scanner.scan_id}: {e}")
            print(f"Scan {scanner.scan_id} finished: {scanner.state}")
        else:
            record.status = 'running'

        self.scan_history.save_scan(record)
        if scanner.is_terminal:
            self.scan_history.cleanup_old_scans(self.config.history_limit)
