from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError

from .document import DocumentQuery, PlaywrightDocument
from .drift_monitor import DriftMonitor
from .errors import ConfigWriteFailure, LocatorSetInvalid, LocatorWatchError
from .locator_store import LocatorStore
from .models import MiningPassOutcome
from .pipeline import run_mining_pass
from .reporting import render_text_report, write_report
from .settings import Settings, load_settings
from .snapshot_document import SnapshotDocument

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2

_PASS_EXIT_CODES = {
    "updated": EXIT_OK,
    "unchanged": EXIT_OK,
    "rejected": EXIT_FAILED,
    "row_detection_failed": EXIT_FAILED,
    "write_failed": EXIT_FAILED,
    "aborted": EXIT_FATAL,
}


def build_logger(home_dir: Path, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger("locatorwatch")
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.addHandler(stream_handler)
    try:
        home_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(home_dir / "locatorwatch.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(file_handler)
    except OSError as exc:
        logger.warning("File logging disabled: %s", exc)
    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="locatorwatch",
        description="Mine, validate and monitor the CSS locators of a table-oriented web page.",
    )
    parser.add_argument("--env-file", type=Path, help="Read settings from this .env file")
    parser.add_argument("--locators", type=Path, help="Override the locator file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init", help="Write the default locator file if it is missing")
    commands.add_parser("restore", help="Restore the locator file from its backup copy")
    commands.add_parser("use-fallback", help="Reset the current locators to the built-in defaults")
    commands.add_parser("mine", help="Mine locators from the live target page")
    snapshot = commands.add_parser("mine-snapshot", help="Mine locators from a saved HTML page")
    snapshot.add_argument("html", type=Path, help="Saved page HTML")
    monitor = commands.add_parser("monitor", help="Probe the configured locators and write a health report")
    monitor.add_argument(
        "--auto-mine",
        action="store_true",
        help="Run a mining pass when the report suggests one",
    )
    return parser


def print_outcome(outcome: MiningPassOutcome) -> None:
    print(f"Mining pass: {outcome.status}")
    print(f"Mined {len(outcome.mining)} locator(s)")
    if outcome.mining.unmined:
        print(f"Not mined: {', '.join(outcome.mining.unmined)}")
    if outcome.validation is not None:
        print(
            f"Validation: {outcome.validation.valid_count}/{outcome.validation.attempted} "
            f"({outcome.validation.validity * 100:.0f}%)"
        )
    if outcome.update is not None:
        for change in outcome.update.changes:
            print(f"  {change.describe()}")
        if outcome.update.backup_path:
            print(f"Backup: {outcome.update.backup_path}")
        self_test = outcome.update.self_test
        if self_test is not None and self_test.error is None:
            print(f"Self-test: {self_test.row_count} rows, {self_test.cell_count} cells in first row")
    if outcome.error:
        print(f"Error: {outcome.error}")


async def with_live_document(settings: Settings, work: Callable[[DocumentQuery], Awaitable[int]]) -> int:
    from playwright.async_api import async_playwright

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=settings.headless)
        try:
            storage_state = str(settings.storage_state) if settings.storage_state else None
            context = await browser.new_context(storage_state=storage_state)
            page = await context.new_page()
            return await work(PlaywrightDocument(page))
        finally:
            await browser.close()


async def mine_live(document: DocumentQuery, settings: Settings, store: LocatorStore) -> int:
    logger = logging.getLogger("locatorwatch.cli")
    if not settings.target_url:
        logger.error("LOCATORWATCH_TARGET_URL is not set")
        return EXIT_FATAL

    locators = store.load()
    main_app = locators.current.value("postLogin", "mainApp")
    try:
        await document.goto(settings.target_url, settings.page_load_timeout_ms)
        if main_app:
            await document.wait_for(str(main_app), settings.page_load_timeout_ms)
    except LocatorWatchError as exc:
        logger.error("Target page never became ready: %s", exc)
        return EXIT_FATAL

    outcome = await run_mining_pass(document, store, class_prefix=settings.class_prefix)
    print_outcome(outcome)
    return _PASS_EXIT_CODES[outcome.status]


async def monitor_live(document: DocumentQuery, settings: Settings, store: LocatorStore, auto_mine: bool) -> int:
    logger = logging.getLogger("locatorwatch.cli")
    report = await DriftMonitor(document, store.load(), settings).run()
    text_path, json_path = write_report(report, settings.report_path)
    print(render_text_report(report))
    logger.info("Report saved to %s and %s", text_path, json_path)

    if report.fatal_error:
        return EXIT_FATAL
    if report.mining_suggested and (auto_mine or settings.auto_mine_on_failure):
        logger.info("Running mining pass after %s failed probes", report.failed)
        outcome = await run_mining_pass(document, store, class_prefix=settings.class_prefix)
        print_outcome(outcome)
        return _PASS_EXIT_CODES[outcome.status]
    return EXIT_FAILED if report.failed else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "locatorwatch requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    args = build_parser().parse_args(argv)
    settings = load_settings(dotenv_path=args.env_file)
    logger = build_logger(settings.home_dir, args.verbose)
    store = LocatorStore(args.locators or settings.locators_path)

    if args.command == "init":
        if store.initialize():
            print(f"Created {store.path}")
        else:
            print(f"{store.path} already exists")
        return EXIT_OK

    try:
        if args.command == "restore":
            restored = store.restore_backup()
            print(f"Restored {store.path} from {store.backup_path}")
            print(f"Last updated: {restored.last_updated or 'never'}")
            return EXIT_OK
        if args.command == "use-fallback":
            reset = store.use_fallback()
            print(f"Switched {store.path} to fallback selectors ({len(reset.changes)} section(s) changed)")
            print(f"Backup: {store.backup_path}")
            return EXIT_OK
        if args.command == "mine-snapshot":
            outcome = asyncio.run(
                run_mining_pass(
                    SnapshotDocument.from_file(args.html),
                    store,
                    class_prefix=settings.class_prefix,
                )
            )
            print_outcome(outcome)
            return _PASS_EXIT_CODES[outcome.status]
        if args.command == "mine":
            return asyncio.run(with_live_document(settings, lambda doc: mine_live(doc, settings, store)))
        return asyncio.run(
            with_live_document(settings, lambda doc: monitor_live(doc, settings, store, args.auto_mine))
        )
    except (LocatorSetInvalid, ConfigWriteFailure) as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    except LocatorWatchError as exc:
        logger.error("Aborted: %s", exc)
        return EXIT_FATAL
    except PlaywrightError as exc:
        logger.error("Browser error: %s", exc.message)
        logger.error("If Chromium is not installed, run: python -m playwright install chromium")
        return EXIT_FATAL
    except OSError as exc:
        logger.error("Could not read input: %s", exc)
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())
