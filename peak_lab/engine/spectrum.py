from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class Spectrum:
    axis: np.ndarray                # wavelength, wavenumber or sample index
    intensity: np.ndarray
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def axis_key(self) -> str:
        return str((self.meta or {}).get("axis_key") or "position")

    @property
    def identifier(self) -> str:
        meta = self.meta or {}
        return str(meta.get("sample_id") or meta.get("source") or "signal")


@dataclass
class BatchResult:
    processed: List[Spectrum]
    qc_table: List[Dict[str, Any]]
    figures: Dict[str, bytes]       # PNG bytes keyed by file name
    audit: List[str]
    report_text: Optional[str] = None
