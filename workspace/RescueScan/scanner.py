"""
Core scanning functionality for RescueScan

IsolationScanner is a step-driven state machine:

    idle -> snapshotting -> probing -> analyzing -> restoring -> done

with errored reachable from any step. Callers (CLI loop, web API, tests)
drive it one operation at a time; run() chains the steps for sync callers.
"""
import time
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Any

from config import Config
from models import Component, ScanResult, Diagnosis, RestoreResult, PENDING, SCANNING, CONFLICT
from probes import ProbeStrategy, build_probe
from registry import ComponentRegistry, RegistryError
from snapshot_store import SnapshotStore
from summarizer import Summarizer
from utils import is_self_component

IDLE = 'idle'
SNAPSHOTTING = 'snapshotting'
PROBING = 'probing'
ANALYZING = 'analyzing'
RESTORING = 'restoring'
DONE = 'done'
ERRORED = 'errored'

ACTIVE_STATES = (SNAPSHOTTING, PROBING, ANALYZING, RESTORING)
TERMINAL_STATES = (DONE, ERRORED)


class ScanError(Exception):
    """Base class for rejected scanner operations"""


class ScanInProgressError(ScanError):
    """start() while another pass is active"""


class InvalidTransitionError(ScanError):
    """Operation not allowed in the current state"""


class UnknownComponentError(ScanError):
    """Component is not part of the frozen component list"""


class IsolationScanner:
    """Finds the first component whose enabling breaks the host"""

    def __init__(self, config: Config, registry: ComponentRegistry, store: SnapshotStore,
                 summarizer: Summarizer, probe: Optional[ProbeStrategy] = None):
        self.config = config
        self.registry = registry
        self.store = store
        self.summarizer = summarizer
        self.probe_strategy = probe or build_probe(config.mode, registry, config)
        self.mode = self.probe_strategy.mode
        self.scan_id = None
        self._reset()

    def _reset(self):
        self.state = IDLE
        self.state_history: List[str] = [IDLE]
        self.components: List[Component] = []
        self.skipped: List[str] = []
        self.diagnosis: Optional[Diagnosis] = None
        self.restore_result: Optional[RestoreResult] = None
        self.error: Optional[str] = None
        self.snapshot_reused = False
        self.start_time = None
        self.end_time = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self, skip: Iterable[str] = ()) -> bool:
        """Snapshot the enabled set, disable everything but the scanner, freeze the probe order"""
        if self.is_active:
            raise ScanInProgressError(f"A scan is already {self.state} ({self.scan_id})")

        self._reset()
        self.scan_id = self._generate_scan_id()
        self.start_time = time.time()
        self._transition(SNAPSHOTTING)

        skip = set(skip)
        try:
            entries = self.registry.list_components()
            names = {entry.file: entry.name for entry in entries}
            enabled = [entry.file for entry in entries if entry.enabled]

            snapshot = self.store.load()
            if snapshot is None:
                self.store.save(enabled)
                snapshot_files = enabled
            else:
                # A previous pass never restored: its snapshot is the true pre-scan state
                self.snapshot_reused = True
                snapshot_files = snapshot.enabled
                print(f"♻️  Reusing snapshot of {len(snapshot_files)} enabled components")

            for file in snapshot_files:
                if is_self_component(file, self.config.self_identifier):
                    continue
                if file in skip:
                    self.skipped.append(file)
                    continue
                self.components.append(Component(file=file, name=names.get(file, file)))

            if self.mode == 'physical':
                to_disable = [f for f in enabled if not is_self_component(f, self.config.self_identifier)]
                if to_disable:
                    failed = self.registry.disable(to_disable)
                    if failed:
                        raise RegistryError(f"Could not disable: {', '.join(failed)}")
        except Exception as e:
            self._fail(f"Could not prepare the environment: {e}")
            return False

        print(f"Started scan {self.scan_id}: {len(self.components)} components to probe ({self.mode})")
        if self.components:
            self._transition(PROBING)
        else:
            self._transition(ANALYZING)
        return True

    def probe(self, file: Optional[str] = None) -> ScanResult:
        """Probe the next pending component, or the named one"""
        if self.state != PROBING:
            raise InvalidTransitionError(f"Cannot probe while {self.state}")

        component = self._select(file)
        component.status = SCANNING
        if self.config.verbose:
            print(f"🔍 Probing {component.name} ({component.file})")

        try:
            result = self.probe_strategy.probe(component)
        except Exception as e:
            # Adapter or connectivity failure: the host is no longer known to be safe
            component.status = CONFLICT
            component.error = str(e) or e.__class__.__name__
            self._fail(f"Host left in an unknown state while probing {component.file}: {e}")
            return ScanResult.conflict(component.error)

        component.status = result.status
        component.error = result.error

        if result.is_conflict:
            # First cause found: stop here, the rest stays pending
            print(f"❌ Conflict: {component.name} - {result.error}")
            self._transition(ANALYZING)
        elif self.next_pending() is None:
            self._transition(ANALYZING)
        elif self.config.verbose:
            print(f"✅ Healthy: {component.name}")
        return result

    def analyze(self, conflicts: Optional[List[Dict[str, str]]] = None) -> Diagnosis:
        """Summarize conflicts; advances the pass when it is waiting for analysis"""
        if conflicts is None:
            if self.state != ANALYZING:
                raise InvalidTransitionError(f"Nothing to analyze while {self.state}")
            conflicts = self.conflicts()

        diagnosis = self.summarizer.summarize(conflicts)
        if self.state == ANALYZING:
            self.diagnosis = diagnosis
            self._transition(RESTORING)
        return diagnosis

    def restore(self, exclude: Optional[Iterable[str]] = None) -> RestoreResult:
        """Re-enable the snapshot minus exclude, then forget the snapshot"""
        if self.state == SNAPSHOTTING:
            raise InvalidTransitionError("Cannot restore while the snapshot is being taken")

        if exclude is None:
            exclude = [c['file'] for c in self.conflicts()] + self.skipped
        exclude = set(exclude)

        if self.state != RESTORING:
            self._transition(RESTORING)

        try:
            snapshot = self.store.load()
        except Exception as e:
            self._fail(f"Could not read the snapshot: {e}")
            return RestoreResult(ok=False, message=self.error)

        if snapshot is None:
            self.restore_result = RestoreResult(ok=False, message='No snapshot found.')
            self._finish(DONE)
            return self.restore_result

        to_enable = [file for file in snapshot.enabled if file not in exclude]
        self.probe_strategy.release(to_enable)
        late = self.probe_strategy.pending()
        if late:
            print(f"⚠️  Still waiting for a late enable of: {', '.join(late)} (it is disabled once it returns)")

        restored, failed = [], {}
        for file in to_enable:
            try:
                self.registry.enable(file)
                restored.append(file)
            except Exception as e:
                failed[file] = str(e)

        if failed:
            # Keep the snapshot so restore can be retried
            self.restore_result = RestoreResult(
                ok=False,
                message=f"Failed to restore {len(failed)} component(s).",
                restored=restored,
                failed=failed,
            )
            self._fail(f"Restore incomplete: {', '.join(sorted(failed))}")
            return self.restore_result

        self.store.clear()
        self.restore_result = RestoreResult(ok=True, message='Restored.', restored=restored)
        self._finish(DONE)
        return self.restore_result

    def run(self, skip: Iterable[str] = (),
            on_step: Optional[Callable[[str, Optional[Component]], None]] = None) -> Dict[str, Any]:
        """One full pass for synchronous callers"""
        def notify(step, component=None):
            if on_step:
                on_step(step, component)

        if not self.start(skip):
            notify(self.state)
            return self.report()
        notify('started')

        while self.state == PROBING:
            component = self.next_pending()
            notify('probing', component)
            self.probe(component.file)
            notify('probed', component)

        if self.state == ANALYZING:
            notify('analyzing')
            self.analyze()
        if self.state == RESTORING:
            notify('restoring')
            self.restore()

        notify(self.state)
        return self.report()

    def next_pending(self) -> Optional[Component]:
        for component in self.components:
            if component.status == PENDING:
                return component
        return None

    def conflicts(self) -> List[Dict[str, str]]:
        return [
            {'name': c.name, 'file': c.file, 'error': c.error or ''}
            for c in self.components if c.status == CONFLICT
        ]

    def report(self) -> Dict[str, Any]:
        """Everything needed to reconstruct what happened in this pass"""
        end = self.end_time or time.time()
        return {
            'scan_id': self.scan_id,
            'state': self.state,
            'state_history': list(self.state_history),
            'mode': self.mode,
            'components': [c.to_dict() for c in self.components],
            'skipped': list(self.skipped),
            'snapshot_reused': self.snapshot_reused,
            'diagnosis': self.diagnosis.to_dict() if self.diagnosis else None,
            'restore': self.restore_result.to_dict() if self.restore_result else None,
            'error': self.error,
            'start_time': self.start_time,
            'scan_duration': end - self.start_time if self.start_time else 0,
        }

    def _select(self, file: Optional[str]) -> Component:
        if file is None:
            component = self.next_pending()
            if component is None:
                raise InvalidTransitionError("No pending components left")
            return component

        for component in self.components:
            if component.file == file:
                if component.status != PENDING:
                    raise InvalidTransitionError(f"{file} was already probed ({component.status})")
                return component
        raise UnknownComponentError(f"Not part of this scan: {file}")

    def _transition(self, state: str):
        self.state = state
        self.state_history.append(state)
        if self.config.verbose:
            print(f"   state -> {state}")

    def _finish(self, state: str):
        self._transition(state)
        self.end_time = time.time()

    def _fail(self, reason: str):
        self.error = reason
        print(f"⚠️  Scan failed: {reason}")
        self._finish(ERRORED)

    def _generate_scan_id(self) -> str:
        """Generate unique scan ID"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = uuid.uuid4().hex[:8]
        return f"scan_{timestamp}_{random_suffix}"
