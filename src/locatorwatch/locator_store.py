from __future__ import annotations

import copy
import json
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigWriteFailure, LocatorSetInvalid
from .models import ChangeEntry, LocatorSet, LocatorVersion, utc_timestamp

BACKUP_SUFFIX = ".backup"

logger = logging.getLogger("locatorwatch.store")

DEFAULT_LOCATORS: dict[str, Any] = {
    "lastUpdated": None,
    "changes": [],
    "current": {
        "login": {
            "emailInput": 'input[name="email"]',
            "passwordInput": 'input[name="password"]',
            "submitButton": 'button[type="submit"]:has-text("Log In")',
            "emailLoginButton": 'button:has-text("Continue with Email"), button:has-text("Sign in using Email")',
        },
        "postLogin": {
            "mainApp": "#main-app",
            "challenge": ["#cf-norobot-container", 'body:has-text("Verifying your browser")'],
        },
        "modals": [".zp-modal-mask", '[role="dialog"]'],
        "table": {
            "readySelector": 'div[role="row"][aria-rowindex="1"]',
            "rowSelectors": [
                'div[role="row"][aria-rowindex]:not([aria-rowindex="0"])',
                "div.zp_Uiy0R",
                'div[role="row"]:not(:has([role="columnheader"]))',
            ],
            "cell": 'div[role="cell"]',
            "name": 'a[data-testid="contact-name-cell"] span.zp_CaeaN',
            "jobTitle": "span.zp_FEm_X",
            "companyName": "a.zp_REh41 span.zp_CaeaN",
            "email": "span.zp_CaeaN.zp_JTaUA",
            "emailRequiresAccess": 'button:has-text("Access")',
            "phoneRequestLink": 'a.zp_BCsLt:has-text("Request")',
            "phoneVisible": "span.zp_CaeaN",
            "linkedIn": 'a[href*="linkedin.com/in"]',
            "location": "span.zp_FEm_X",
            "employeeCount": "span.zp_Vnh4L",
            "nicheTags": "span.zp_z4aAi",
        },
        "navigation": {
            "nextButton": 'button[aria-label="Next page"], button:has-text("Next")',
            "pageInput": 'input[aria-label="Page number"]',
        },
    },
    "fallback": {
        "login": {
            "emailInput": 'input[name="email"]',
            "passwordInput": 'input[name="password"]',
            "submitButton": 'button[type="submit"]',
        },
        "table": {
            "rowSelectors": ['div[role="row"]'],
            "cell": '[role="cell"]',
            "name": 'a[href*="/contacts/"]',
            "email": 'span:has-text("@")',
            "phone": 'a:has-text("Request"), span:has-text("+")',
        },
    },
}


def locator_set_from_dict(payload: Mapping[str, Any]) -> LocatorSet:
    current = payload.get("current")
    fallback = payload.get("fallback") or {}
    if not isinstance(current, Mapping):
        raise LocatorSetInvalid("Locator file has no 'current' section.")
    if not isinstance(fallback, Mapping):
        raise LocatorSetInvalid("Locator file 'fallback' section must be an object.")

    changes = tuple(
        ChangeEntry(
            field=str(item.get("field", "")),
            old=item.get("old"),
            new=item.get("new"),
            timestamp=str(item.get("timestamp", "")),
        )
        for item in payload.get("changes") or []
        if isinstance(item, Mapping)
    )
    locator_set = LocatorSet(
        current=LocatorVersion(version="current", sections=dict(current)),
        fallback=LocatorVersion(version="fallback", sections=dict(fallback)),
        last_updated=payload.get("lastUpdated"),
        changes=changes,
    )
    ensure_row_selectors(locator_set)
    return locator_set


def ensure_row_selectors(locator_set: LocatorSet) -> None:
    raw = locator_set.current.section("table").get("rowSelectors")
    if not isinstance(raw, list) or not locator_set.current.row_selectors:
        raise LocatorSetInvalid("current.table.rowSelectors must be a non-empty list.")


class LocatorStore:
    """The persisted LocatorSet artifact plus its sibling backup copy.

    Writes go through a temporary file and ``os.replace`` so a failed write
    never leaves a half-written artifact behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.backup_path = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    def initialize(self, payload: Mapping[str, Any] | None = None) -> bool:
        with self._lock:
            if self.path.exists():
                return False
            self._write_json(dict(payload or DEFAULT_LOCATORS))
            return True

    def load(self) -> LocatorSet:
        with self._lock:
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise LocatorSetInvalid(f"Locator file not found: {self.path}") from exc
            except json.JSONDecodeError as exc:
                raise LocatorSetInvalid(f"Locator file is not valid JSON: {self.path} ({exc})") from exc
        if not isinstance(payload, Mapping):
            raise LocatorSetInvalid(f"Locator file must hold a JSON object: {self.path}")
        return locator_set_from_dict(payload)

    def backup(self) -> Path:
        with self._lock:
            try:
                shutil.copyfile(self.path, self.backup_path)
            except OSError as exc:
                raise ConfigWriteFailure(f"Could not back up {self.path} to {self.backup_path}: {exc}") from exc
            return self.backup_path

    def save(self, locator_set: LocatorSet) -> None:
        try:
            ensure_row_selectors(locator_set)
        except LocatorSetInvalid as exc:
            raise ConfigWriteFailure(str(exc)) from exc
        with self._lock:
            self._write_json(locator_set.to_dict())

    def _write_json(self, payload: dict[str, Any]) -> None:
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(text)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ConfigWriteFailure(f"Could not write {self.path}: {exc}") from exc

    def restore_backup(self) -> LocatorSet:
        """Make the sibling backup the current artifact again."""
        with self._lock:
            try:
                payload = json.loads(self.backup_path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise ConfigWriteFailure(f"No backup to restore: {self.backup_path}") from exc
            except (OSError, json.JSONDecodeError) as exc:
                raise ConfigWriteFailure(f"Backup is unreadable: {self.backup_path} ({exc})") from exc
            if not isinstance(payload, Mapping):
                raise ConfigWriteFailure(f"Backup must hold a JSON object: {self.backup_path}")
            try:
                restored = locator_set_from_dict(payload)
            except LocatorSetInvalid as exc:
                raise ConfigWriteFailure(f"Backup is not a valid locator file: {exc}") from exc
            self._write_json(restored.to_dict())
        logger.warning("Restored %s from %s", self.path, self.backup_path)
        return restored

    def use_fallback(self) -> LocatorSet:
        """Reset the current locators to the built-in defaults.

        Sections the defaults do not define are taken from the stored fallback
        variant. The previous artifact is backed up first and the fallback
        variant itself is kept as stored.
        """
        locators = self.load()
        sections = locators.fallback.to_dict()
        sections.update(copy.deepcopy(DEFAULT_LOCATORS["current"]))

        timestamp = utc_timestamp()
        previous = locators.current.to_dict()
        changes = tuple(
            ChangeEntry(f"current.{name}", previous.get(name), value, timestamp)
            for name, value in sections.items()
            if previous.get(name) != value
        )
        reset = LocatorSet(
            current=locators.current.with_sections(sections),
            fallback=locators.fallback,
            last_updated=timestamp,
            changes=changes,
        )
        self.backup()
        self.save(reset)
        logger.warning("Using fallback selectors, mining may be needed")
        return reset
