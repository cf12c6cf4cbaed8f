from datetime import datetime
import platform

import numpy as np
import scipy


def start_audit() -> list[str]:
    return [f"Session start: {datetime.now().isoformat()}",
            f"Platform: {platform.platform()}",
            f"numpy {np.__version__} / scipy {scipy.__version__}"]


def log_step(audit: list[str], msg: str):
    audit.append(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}")
