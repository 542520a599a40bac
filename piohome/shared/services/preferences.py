"""PIO Home state: user settings stored in <core_dir>/homestate.json.

The file is owned by the PIO Home frontend. This module only reads it,
fresh on every query, and treats a missing or corrupt file as "no
preferences".
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from piohome.shared.services.core import get_core_dir

logger = logging.getLogger(__name__)

STATE_FILENAME = "homestate.json"


def state_path() -> Path:
    return get_core_dir() / STATE_FILENAME


@dataclass
class HomeState:
    """The ``storage`` section of the home state.

    Attributes:
        theme: Frontend theme name, if the user picked one.
        workspace: Active workspace identifier.
        show_on_startup: caller id -> whether to open PIO Home on start.
    """

    theme: str | None = None
    workspace: str | None = None
    show_on_startup: dict[str, Any] = field(default_factory=dict)

    def show_at_startup(self, caller: str) -> bool:
        """True unless the caller has an explicit falsy entry."""
        if caller not in self.show_on_startup:
            return True
        return bool(self.show_on_startup[caller])

    @classmethod
    def from_dict(cls, data: Any) -> HomeState:
        storage = data.get("storage") if isinstance(data, dict) else None
        if not isinstance(storage, dict):
            return cls()
        show = storage.get("showOnStartup")
        return cls(
            theme=storage.get("theme") or None,
            workspace=storage.get("workspace") or None,
            show_on_startup=show if isinstance(show, dict) else {},
        )

    @classmethod
    def load(cls, path: Path | None = None) -> HomeState:
        """Load state from disk, returning defaults if missing/corrupt."""
        target = path or state_path()
        try:
            if target.exists():
                state = cls.from_dict(json.loads(target.read_text(encoding="utf-8")))
                logger.debug("Loaded home state from %s", target)
                return state
            logger.debug("Home state not found at %s; using defaults", target)
        except (OSError, ValueError):
            logger.warning("Failed to load home state from %s; using defaults", target)
        return cls()


def show_at_startup(caller: str, path: Path | None = None) -> bool:
    return HomeState.load(path).show_at_startup(caller)
