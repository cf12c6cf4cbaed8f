from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from peak_lab.engine.local_maxima import DEFAULT_METHOD, PLATEAU_POLICIES, VARIANTS

DEFAULT_PEAK_CONFIG: Dict[str, object] = {
    "enabled": True,
    "half_window": 2,
    "method": DEFAULT_METHOD,
    "verify_variants": False,
    "plateau_policy": "all",
    "min_height": None,
    "max_peaks": 0,
}


class RecipeValidationError(ValueError):
    """Raised when a recipe fails validation before processing."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def resolve_peak_config(peak_cfg: Optional[Dict[str, object]] = None) -> Dict[str, object]:
    """Return merged peak configuration using shared defaults."""

    resolved = dict(DEFAULT_PEAK_CONFIG)
    if peak_cfg:
        user = {k: v for k, v in peak_cfg.items() if v is not None}
        if "half_window" not in user:
            for alias in ("window", "distance"):
                if alias in user:
                    user["half_window"] = user[alias]
                    break
        if "num_peaks" in user and "max_peaks" not in user:
            user["max_peaks"] = user["num_peaks"]
        resolved.update(user)
    return resolved


def _as_whole_number(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number != int(number):
        return None
    return int(number)


@dataclass
class Recipe:
    module: str = "peaks"
    params: Dict[str, Any] = field(default_factory=dict)
    version: str = "0.1.0"

    def peak_config(self) -> Dict[str, object]:
        features = self.params.get("features", {}) if isinstance(self.params, dict) else {}
        peaks = features.get("peaks", {}) if isinstance(features, dict) else {}
        return resolve_peak_config(peaks if isinstance(peaks, dict) else None)

    def validate(self) -> list[str]:
        errs = []
        features = self.params.get("features", {})
        if not isinstance(features, dict) or not isinstance(features.get("peaks", {}), dict):
            return ["Peak settings must be a mapping under features.peaks"]
        cfg = self.peak_config()

        method = cfg.get("method")
        if method not in VARIANTS:
            errs.append(f"Unknown peak detection method '{method}'")
        policy = cfg.get("plateau_policy")
        if policy not in PLATEAU_POLICIES:
            errs.append(f"Unknown plateau policy '{policy}'")

        half_window = _as_whole_number(cfg.get("half_window"))
        if half_window is None:
            errs.append("Half-window must be an integer")
        elif half_window < 0:
            errs.append("Half-window must not be negative")

        max_peaks = _as_whole_number(cfg.get("max_peaks") or 0)
        if max_peaks is None:
            errs.append("Maximum peak count must be an integer")
        elif max_peaks < 0:
            errs.append("Maximum peak count must not be negative")

        min_height = cfg.get("min_height")
        if min_height is not None:
            try:
                float(min_height)
            except (TypeError, ValueError):
                errs.append("Minimum peak height must be numeric")
        return errs

    def to_dict(self) -> Dict[str, Any]:
        return {"module": self.module, "version": self.version, "params": self.params}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        data = data or {}
        return cls(
            module=str(data.get("module") or "peaks"),
            params=dict(data.get("params") or {}),
            version=str(data.get("version") or "0.1.0"),
        )


def load_recipe(path: str | Path) -> Recipe:
    with Path(path).open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    if not isinstance(content, dict):
        raise RecipeValidationError([f"Recipe file {path} does not contain a mapping"])
    return Recipe.from_dict(content)


def save_recipe(recipe: Recipe, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(recipe.to_dict(), handle, sort_keys=False)
    return target


def default_preset_path() -> Path:
    return Path(__file__).resolve().parent.parent / "config" / "presets" / "peaks_default.yaml"
