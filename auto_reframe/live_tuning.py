# live_tuning.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from auto_reframe.config import Tunables

log = logging.getLogger(__name__)


class TunablesWatcher:
    """Watch a JSON file and hot-reload its keys onto a :class:`Tunables`."""

    def __init__(self, path: str | Path = "reframe_params.json") -> None:
        self.path = Path(path).expanduser().resolve()
        self._stamp: Tuple[float, int] = (0.0, -1)  # (mtime, size)
        self.params: Dict[str, Any] = {}

        log.info("Watching %s for tunables", self.path)
        self._load(initial=True)

    # ------------------------------------------------------------------
    #   Internal helpers
    # ------------------------------------------------------------------
    def _load(self, *, initial: bool = False) -> bool:
        try:
            stat = self.path.stat()
            self._stamp = (stat.st_mtime, stat.st_size)
            with self.path.open("r", encoding="utf-8") as fp:
                data = json.load(fp)
        except FileNotFoundError:
            if initial:
                log.info("%s not found; live tuning idle until it is created", self.path)
            else:
                log.warning("%s was deleted; keeping previous values", self.path)
            return False
        except (json.JSONDecodeError, OSError) as exc:
            log.warning("Could not read %s: %s", self.path, exc)
            return False

        if not isinstance(data, dict):
            log.warning("%s must hold a JSON object, got %s", self.path, type(data).__name__)
            return False
        self.params = data
        if not initial:
            log.info("Reloaded tunables from %s", self.path)
        return True

    # ------------------------------------------------------------------
    #   Public API
    # ------------------------------------------------------------------
    def maybe_reload(self) -> bool:
        """
        Reload when the file's size or mtime changed since the last load.
        Returns **True** only when new values were read.
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return False

        if (stat.st_mtime, stat.st_size) != self._stamp:
            return self._load()
        return False

    def apply(self, tunables: Tunables) -> Tuple[Tunables, List[str]]:
        """
        Overlay the watched values. Unknown keys and values of the wrong type
        are logged and ignored; the previous value of such a field stays.
        Returns the clamped tunables and the ignored keys.
        """
        updated, unknown, invalid = tunables.updated(self.params)
        if unknown:
            log.warning("Ignoring unknown tunables: %s", ", ".join(unknown))
        for key in invalid:
            log.warning("Ignoring %s=%r: wrong type", key, self.params[key])
        return updated.clamped(), sorted(unknown + invalid)
