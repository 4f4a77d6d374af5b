"""
Probe strategies for RescueScan

A probe answers one question: does enabling this component break the
application? Per-component failures always come back as a conflict
ScanResult; only a failure to put the host back into a safe state
escapes as RegistryError.
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, Iterable, List, Optional

import requests

from config import Config
from error_detector import classify
from log_tail import tail, new_lines, log_size, read_since
from models import Component, ScanResult
from registry import ComponentRegistry, RegistryError

TIMEOUT_MESSAGE = "Component caused a timeout (possible infinite loop or hang)."


class ProbeStrategy:
    """Base class for probing modes"""

    mode = ''

    def __init__(self, config: Config):
        self.config = config

    def probe(self, component: Component) -> ScanResult:
        raise NotImplementedError

    def release(self, files: Iterable[str]) -> None:
        """Forget pending clean-up for files that restore is about to enable"""

    def pending(self) -> List[str]:
        """Components whose enable call is still running"""
        return []


class PhysicalProbe(ProbeStrategy):
    """Really enables the component, watches the error log, disables it again"""

    mode = 'physical'

    def __init__(self, registry: ComponentRegistry, config: Config):
        super().__init__(config)
        self.registry = registry
        # file -> enable call that outlived probe_timeout
        self.stragglers: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def probe(self, component: Component) -> ScanResult:
        config = self.config
        offset = log_size(config.log_path)
        baseline = tail(config.log_path, config.baseline_lines, config.baseline_bytes)

        try:
            result = self._enable_and_watch(component, offset, baseline)
        finally:
            # Leave the host safe after every single step
            failed = self.registry.disable([component.file])
            if failed:
                raise RegistryError(f"Could not disable {component.file} after probing it")

        return result

    def release(self, files: Iterable[str]) -> None:
        with self._lock:
            for file in files:
                self.stragglers.pop(file, None)

    def pending(self) -> List[str]:
        with self._lock:
            return list(self.stragglers)

    def _enable_and_watch(self, component: Component, offset: Optional[int], baseline) -> ScanResult:
        config = self.config
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.registry.enable, component.file)
        try:
            future.result(timeout=config.probe_timeout)
        except FutureTimeout:
            self._watch_straggler(component.file, future)
            return ScanResult.conflict(TIMEOUT_MESSAGE)
        except Exception as e:
            # A load-time failure is itself the conflict signal
            return ScanResult.conflict(str(e) or e.__class__.__name__)
        finally:
            executor.shutdown(wait=False)

        fatal, messages = classify(self._appended_lines(offset, baseline), config.self_identifier)
        if fatal:
            return ScanResult.conflict("\n".join(messages))
        return ScanResult.healthy()

    def _appended_lines(self, offset: Optional[int], baseline) -> List[str]:
        """Log lines written while the component was being enabled"""
        config = self.config
        if offset is not None:
            appended = read_since(config.log_path, offset, config.after_lines, config.after_bytes)
            if appended is not None:
                return appended
        # No size to compare against, or the log was rotated: diff the windows
        after = tail(config.log_path, config.after_lines, config.after_bytes)
        return new_lines(baseline, after)

    def _watch_straggler(self, file: str, future: Future):
        with self._lock:
            self.stragglers[file] = future
        future.add_done_callback(lambda _: self._disable_straggler(file, future))

    def _disable_straggler(self, file: str, future: Future):
        """A timed-out enable finally returned: switch the component off again"""
        with self._lock:
            if self.stragglers.get(file) is not future:
                return
            failed = self.registry.disable([file])
            del self.stragglers[file]
        if failed:
            print(f"⚠️  Could not disable {file} after its late enable finished")
        else:
            print(f"🔌 Late enable of {file} finished; disabled it again")


class VirtualProbe(ProbeStrategy):
    """
    Asks the application to serve one request with only the candidate
    component (and the scanner) enabled. Nothing is toggled for real.
    """

    mode = 'virtual'
    SELF_HEADER = 'X-RescueScan-Self'

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        super().__init__(config)
        self.session = session or requests.Session()

    def probe(self, component: Component) -> ScanResult:
        config = self.config
        headers = {
            config.probe_header: component.file,
            self.SELF_HEADER: config.self_identifier,
        }

        try:
            resp = self.session.get(
                config.probe_url,
                headers=headers,
                timeout=config.probe_timeout,
                allow_redirects=False,
            )
        except requests.Timeout:
            return ScanResult.conflict(TIMEOUT_MESSAGE)
        except requests.RequestException as e:
            return ScanResult.conflict(f"Probe request failed: {e}")

        if resp.status_code >= 500:
            return ScanResult.conflict(f"Server returned HTTP {resp.status_code}")
        return ScanResult.healthy()


def build_probe(mode: str, registry: ComponentRegistry, config: Config,
                session: Optional[requests.Session] = None) -> ProbeStrategy:
    """Probe strategy for a session mode"""
    if mode == 'admin':
        mode = 'virtual'
    if mode == 'physical':
        return PhysicalProbe(registry, config)
    if mode == 'virtual':
        return VirtualProbe(config, session=session)
    raise ValueError(f"Unsupported probe mode: {mode}")
