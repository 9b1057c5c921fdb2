from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from .selector_rules import DEFAULT_CLASS_PREFIX

SHORT_PROBE_TIMEOUT_MS = 2_000
MODAL_TIMEOUT_MS = 3_000
PROBE_TIMEOUT_MS = 5_000
PAGE_LOAD_TIMEOUT_MS = 60_000

MIN_ROW_CELLS = 10
LOW_ROW_COUNT = 5
ACCEPTANCE_THRESHOLD = 0.70

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    locators_path: Path
    login_url: str | None = None
    target_url: str | None = None
    storage_state: Path | None = None
    report_path: Path = Path("selector-monitor-report.txt")
    class_prefix: str = DEFAULT_CLASS_PREFIX
    headless: bool = True
    auto_mine_on_failure: bool = False
    home_dir: Path = Path.home() / ".locatorwatch"
    short_timeout_ms: int = SHORT_PROBE_TIMEOUT_MS
    modal_timeout_ms: int = MODAL_TIMEOUT_MS
    probe_timeout_ms: int = PROBE_TIMEOUT_MS
    page_load_timeout_ms: int = PAGE_LOAD_TIMEOUT_MS


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def load_settings(env: Mapping[str, str] | None = None, *, dotenv_path: Path | None = None) -> Settings:
    """Build settings from ``env`` or, when omitted, from ``.env`` plus the process environment."""
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    storage_state = _optional(env.get("LOCATORWATCH_STORAGE_STATE"))
    home = _optional(env.get("LOCATORWATCH_HOME"))
    return Settings(
        locators_path=Path(env.get("LOCATORWATCH_LOCATORS") or "locators.json"),
        login_url=_optional(env.get("LOCATORWATCH_LOGIN_URL")),
        target_url=_optional(env.get("LOCATORWATCH_TARGET_URL")),
        storage_state=Path(storage_state) if storage_state else None,
        report_path=Path(env.get("LOCATORWATCH_REPORT_PATH") or "selector-monitor-report.txt"),
        class_prefix=_optional(env.get("LOCATORWATCH_CLASS_PREFIX")) or DEFAULT_CLASS_PREFIX,
        headless=_flag(env.get("LOCATORWATCH_HEADLESS"), True),
        auto_mine_on_failure=_flag(env.get("AUTO_MINE_ON_FAILURE"), False),
        home_dir=Path(home) if home else Path.home() / ".locatorwatch",
    )
