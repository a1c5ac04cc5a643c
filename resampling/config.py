from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from resampling.errors import ConfigError
from resampling.stages.ordering import RemovalPolicy
from resampling.stages.similarity import Metric


@dataclass(frozen=True)
class Columns:
    key: str = "PlotObservationID"
    x: str = "X"
    y: str = "Y"
    category: str = "Taxon_name"
    weight: str = "cover"

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "Columns":
        cfg = cfg or {}
        return cls(**{k: str(v) for k, v in cfg.items() if k in cls.__dataclass_fields__ and v is not None})


@dataclass(frozen=True)
class ResampleSettings:
    dist_threshold: float = 1000.0
    sim_threshold: float = 0.8
    metric: Metric = Metric.SIMPSON
    policy: RemovalPolicy = RemovalPolicy.RANDOM
    ranking_attribute: Optional[str] = None
    strata: Optional[str] = None
    longlat: bool = False
    seed: int = 1234
    n_jobs: int = 1
    progress: bool = False
    columns: Columns = Columns()

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "metric", Metric.parse(self.metric))
        object.__setattr__(self, "policy", RemovalPolicy.parse(self.policy))
        if isinstance(self.columns, dict):
            object.__setattr__(self, "columns", Columns.from_dict(self.columns))

        if not self.dist_threshold > 0:
            raise ConfigError(f"dist_threshold must be positive, got {self.dist_threshold!r}")
        if not 0.0 <= self.sim_threshold <= 1.0:
            raise ConfigError(f"sim_threshold must lie in [0, 1], got {self.sim_threshold!r}")
        if self.policy.needs_ranking_attribute and not self.ranking_attribute:
            raise ConfigError(f"removal policy {self.policy.value!r} requires a ranking_attribute")
        if self.n_jobs == 0:
            raise ConfigError("n_jobs must be non-zero")

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any], columns: Optional[Dict[str, Any]] = None) -> "ResampleSettings":
        """Build settings from the ``resampling`` section of a run config."""
        distance = cfg.get("distance") or {}
        similarity = cfg.get("similarity") or {}
        removal = cfg.get("removal") or {}
        kwargs: Dict[str, Any] = {}
        if distance.get("threshold") is not None:
            kwargs["dist_threshold"] = float(distance["threshold"])
        if distance.get("mode") is not None:
            kwargs["longlat"] = distance["mode"] == "geographic"
        if similarity.get("metric") is not None:
            kwargs["metric"] = similarity["metric"]
        if similarity.get("threshold") is not None:
            kwargs["sim_threshold"] = float(similarity["threshold"])
        if removal.get("policy") is not None:
            kwargs["policy"] = removal["policy"]
        if removal.get("ranking_attribute") is not None:
            kwargs["ranking_attribute"] = str(removal["ranking_attribute"])
        for key in ("strata", "seed", "n_jobs", "progress"):
            if cfg.get(key) is not None:
                kwargs[key] = cfg[key]
        kwargs["columns"] = Columns.from_dict(columns)
        return cls(**kwargs)

    def describe(self) -> Dict[str, Any]:
        d = asdict(self)
        d["metric"] = self.metric.value
        d["policy"] = self.policy.value
        d["distance_mode"] = "geographic" if self.longlat else "planar"
        return d
