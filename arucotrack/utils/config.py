"""
Configuration management for arucotrack.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict

from ..tracking.loop import GapPolicy, ReferencePointSelector
from ..tracking.linalg import SOLVERS
from ..tracking.models import MODELS, LinearModel, build_model, model_from_matrices


@dataclass
class FilterConfig:
    """Kalman filter and tracking loop parameters."""
    dt: float = 1.0 / 30
    model: str = 'constant_velocity'
    process_variance: float = 1000.0
    measurement_variance: float = 4.0
    initial_variance: Optional[float] = 100.0
    solver: str = 'cholesky'
    joseph: bool = False
    gap_policy: str = 'freeze'
    reference: str = '0'          # corner index 0-3 or 'center'
    marker_id: Optional[int] = None
    init_from_first_measurement: bool = False
    matrices: Optional[Dict[str, Any]] = None  # explicit A, C, Q, R, P0 override the model

    def __post_init__(self):
        self.reference = str(self.reference)
        if self.dt <= 0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.model not in MODELS:
            raise ValueError(f"Unknown model '{self.model}', expected one of {sorted(MODELS)}")
        if self.solver not in SOLVERS:
            raise ValueError(f"Unknown solver '{self.solver}', expected one of {SOLVERS}")
        GapPolicy(self.gap_policy)
        ReferencePointSelector(self.reference)

    def build_model(self) -> LinearModel:
        """Model described by this config."""
        if self.matrices:
            return model_from_matrices(self.dt, self.matrices)
        return build_model(
            self.model,
            dt=self.dt,
            process_variance=self.process_variance,
            measurement_variance=self.measurement_variance,
            initial_variance=self.initial_variance
        )

    def build_selector(self) -> ReferencePointSelector:
        return ReferencePointSelector(self.reference, self.marker_id)


@dataclass
class DetectionConfig:
    """ArUco detection parameters configuration."""
    dictionary: int = 0
    refine_corners: bool = True
    parameters_file: Optional[str] = None
    show_rejected: bool = False


@dataclass
class VideoConfig:
    """Video source configuration."""
    camera_id: int = 0
    camera_wait_ms: int = 10
    file_wait_ms: int = 30
    progress_every: int = 30


SECTIONS = {
    'filter': FilterConfig,
    'detection': DetectionConfig,
    'video': VideoConfig,
}


class Config:
    """
    Main configuration manager.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to JSON config file (optional)
        """
        self.filter = FilterConfig()
        self.detection = DetectionConfig()
        self.video = VideoConfig()

        if config_path and config_path.exists():
            self.load(config_path)

    def load(self, path: Path):
        """
        Load configuration from JSON file.

        Args:
            path: Path to config file
        """
        with open(path, 'r') as f:
            data = json.load(f)

        self._apply(data)

    def save(self, path: Path):
        """
        Save configuration to JSON file.

        Args:
            path: Path to save config
        """
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'filter': asdict(self.filter),
            'detection': asdict(self.detection),
            'video': asdict(self.video)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create configuration from dictionary."""
        config = cls()
        config._apply(data)
        return config

    def _apply(self, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a JSON object, got {type(data).__name__}")
        unknown = set(data) - set(SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")

        for name, section_cls in SECTIONS.items():
            if name not in data:
                continue
            try:
                section = section_cls(**data[name])
            except TypeError as exc:
                # Unknown field names or a section that is not an object
                raise ValueError(f"Invalid '{name}' section: {exc}") from exc
            setattr(self, name, section)
