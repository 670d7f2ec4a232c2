from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO


@dataclass
class MetricsEmitter:
    """Writes one `[METRICS]` line per sample to stdout and, optionally, an append-only file.

    Nothing is read back on startup; counters live only as long as the process.
    """

    metrics_log_path: Optional[str] = None
    stream: Optional[TextIO] = None

    def __post_init__(self) -> None:
        self._file = None
        if self.metrics_log_path:
            path = Path(self.metrics_log_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file = path.open("a", encoding="utf-8")

    def emit(self, name: str, value: float, tags: Optional[Dict[str, Any]] = None) -> None:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "name": name,
            "value": value,
            "tags": tags or {},
        }
        line = f"[METRICS] {json.dumps(payload, ensure_ascii=True)}"
        print(line, file=self.stream or sys.stdout)
        if self._file is not None:
            self._file.write(line + "\n")
            self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
