"""
Configuration management for RescueScan
"""
import os
from dataclasses import dataclass, fields
from typing import Optional


@dataclass
class Config:
    """Configuration settings for a RescueScan session"""
    components_dir: str = '/app/data/components'
    data_dir: str = '/app/data/rescuescan'
    log_path: Optional[str] = None
    mode: str = 'physical'
    report_format: str = 'json'
    verbose: bool = False

    # The scanner's own component: never disabled, never probed
    self_identifier: str = 'rescuescan'

    # Log tail windows (lines, bytes) before and after enabling a component
    baseline_lines: int = 50
    baseline_bytes: int = 50000
    after_lines: int = 80
    after_bytes: int = 80000

    # Per-component probe budget in seconds
    probe_timeout: float = 20.0

    # Virtual probe side channel
    probe_url: str = 'http://localhost/'
    probe_header: str = 'X-RescueScan-Probe'

    # Snapshot persistence
    snapshot_key: str = 'conflict_scan_state'
    snapshot_ttl: int = 60 * 60  # 1 hour

    # 'restart' probes the whole snapshot again, 'resume' skips the
    # conflicts recorded by the previous scan of the same scope
    resume_policy: str = 'restart'

    # Finished scans kept in the history (older reports are deleted)
    history_limit: int = 50

    # Text-completion service used for diagnoses
    ai_api_key: str = ''
    ai_base_url: str = 'https://api.openai.com/v1'
    ai_model: str = 'gpt-4o-mini'
    ai_temperature: float = 0.3
    ai_max_tokens: int = 400
    ai_timeout: int = 30

    probe_modes = ('physical', 'virtual')
    report_formats = ('json', 'markdown', 'html')
    resume_policies = ('restart', 'resume')

    def __post_init__(self):
        if self.mode == 'admin':
            # the admin UI's name for the virtual probe
            self.mode = 'virtual'
        if self.mode not in self.probe_modes:
            raise ValueError(f"Unsupported probe mode: {self.mode}")
        if self.report_format not in self.report_formats:
            raise ValueError(f"Unsupported report format: {self.report_format}")
        if self.resume_policy not in self.resume_policies:
            raise ValueError(f"Unsupported resume policy: {self.resume_policy}")

    @property
    def scope(self) -> str:
        """Name of the host instance this config scans"""
        return os.path.basename(os.path.normpath(self.components_dir)) or 'default'

    @classmethod
    def from_env(cls, prefix: str = 'RESCUESCAN_', **overrides) -> 'Config':
        """Build a config from RESCUESCAN_* environment variables"""
        values = {}
        for field in fields(cls):
            raw = os.environ.get(prefix + field.name.upper())
            if raw is None:
                continue
            if field.type in (bool, 'bool'):
                values[field.name] = raw.strip().lower() in ('1', 'true', 'yes', 'on')
            elif field.type in (int, 'int'):
                values[field.name] = int(raw)
            elif field.type in (float, 'float'):
                values[field.name] = float(raw)
            else:
                values[field.name] = raw
        values.update(overrides)
        return cls(**values)
