import time
import uuid
from typing import Dict, Any, Optional

import yaml
import pandas as pd

from resampling.config import ResampleSettings
from resampling.pipeline import resample
from resampling.utils import write_output, validate_config, get_logger

logger = get_logger(__name__)


def _read_table(path: str, key_column: str) -> pd.DataFrame:
    """Load a CSV table, keeping record keys as strings."""
    sep = "\t" if path.endswith((".tsv", ".txt")) else ","
    return pd.read_csv(path, sep=sep, dtype={key_column: str})


def _apply_overrides(cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> None:
    if not overrides:
        return

    rs = cfg.setdefault("resampling", {})

    # Distance
    if overrides.get("dist_threshold") is not None or overrides.get("longlat") is not None:
        dist = rs.setdefault("distance", {})
        if overrides.get("dist_threshold") is not None:
            dist["threshold"] = float(overrides["dist_threshold"])  # type: ignore[arg-type]
        if overrides.get("longlat") is not None:
            dist["mode"] = "geographic" if overrides["longlat"] else "planar"

    # Similarity
    if overrides.get("metric") is not None or overrides.get("sim_threshold") is not None:
        sim = rs.setdefault("similarity", {})
        if overrides.get("metric") is not None:
            sim["metric"] = overrides["metric"]
        if overrides.get("sim_threshold") is not None:
            sim["threshold"] = float(overrides["sim_threshold"])  # type: ignore[arg-type]

    # Removal
    if overrides.get("policy") is not None or overrides.get("ranking_attribute") is not None:
        rm = rs.setdefault("removal", {})
        if overrides.get("policy") is not None:
            rm["policy"] = overrides["policy"]
        if overrides.get("ranking_attribute") is not None:
            rm["ranking_attribute"] = overrides["ranking_attribute"]

    if overrides.get("strata") is not None:
        rs["strata"] = overrides["strata"] or None
    if overrides.get("seed") is not None:
        rs["seed"] = int(overrides["seed"])  # type: ignore[arg-type]
    if overrides.get("n_jobs") is not None:
        rs["n_jobs"] = int(overrides["n_jobs"])  # type: ignore[arg-type]
    if overrides.get("progress") is not None:
        rs["progress"] = overrides["progress"]


def _execute_pipeline(cfg: Dict[str, Any], run_id: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Execute one resampling run with the given configuration."""
    _apply_overrides(cfg, overrides)
    validate_config(cfg)

    input_cfg = cfg["input"]
    settings = ResampleSettings.from_dict(cfg.get("resampling", {}), input_cfg.get("columns"))
    logger.info(
        "config loaded run_id=%s metric=%s policy=%s dist=%g sim=%g",
        run_id,
        settings.metric.value,
        settings.policy.value,
        settings.dist_threshold,
        settings.sim_threshold,
    )

    t0 = time.monotonic()
    key = settings.columns.key
    records = _read_table(input_cfg["records"], key)
    composition = _read_table(input_cfg["composition"], key)
    logger.info(
        "loaded records=%d composition_rows=%d took_ms=%d",
        len(records),
        len(composition),
        int((time.monotonic() - t0) * 1000),
    )

    result = resample(records, composition, settings)
    summary = result.summary.model_dump(mode="json")
    summary["run_id"] = run_id

    generated_files = write_output(result.records, summary, cfg["output"])
    logger.info("output written files=%s", generated_files)
    return summary


def run_once(config_path: str, *, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Execute a resampling run once with the given config file path."""
    run_id = uuid.uuid4().hex[:8]
    logger.info("=== run start id=%s ===", run_id)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
        base_overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        return _execute_pipeline(cfg, run_id, base_overrides)

    except Exception as e:
        logger.error("Resampling run failed: %s", e)
        raise
    finally:
        logger.info("=== run end id=%s ===", run_id)
