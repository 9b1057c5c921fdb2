from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from .document import DocumentQuery, LoginHook
from .errors import CriticalPreconditionTimeout, LocatorWatchError, ProbeTimeout
from .fields import FIELD_DESCRIPTORS
from .models import (
    ExtractionStrategy,
    FieldDescriptor,
    HealthCategory,
    HealthReport,
    LocatorSet,
    ProbeResult,
    utc_timestamp,
)
from .resolution import resolve_first_match
from .selector_rules import normalize_space
from .settings import LOW_ROW_COUNT, MIN_ROW_CELLS, Settings

TEXT_PREVIEW_LIMIT = 50
_NAME_NOISE_PATTERN = re.compile(r"[-—]{2,}\s?")


def clean_preview(text: str | None) -> str | None:
    compact = normalize_space(text)
    if not compact:
        return None
    return _NAME_NOISE_PATTERN.sub("", compact[:TEXT_PREVIEW_LIMIT], count=1)


class DriftMonitor:
    """Runs the probe battery against the live document and builds a HealthReport.

    The monitor only detects drift. ``HealthReport.mining_suggested`` is a
    signal for whoever runs the monitor; the monitor never starts a mining pass.
    """

    def __init__(
        self,
        document: DocumentQuery,
        locators: LocatorSet,
        settings: Settings,
        *,
        login: LoginHook | None = None,
        descriptors: Sequence[FieldDescriptor] = FIELD_DESCRIPTORS,
    ) -> None:
        self.document = document
        self.locators = locators
        self.settings = settings
        self.login = login
        self.descriptors = tuple(descriptors)
        self.logger = logging.getLogger("locatorwatch.monitor")

    async def run(self) -> HealthReport:
        report = HealthReport(generated_at=utc_timestamp())
        self.logger.info("Starting locator monitoring...")
        try:
            await self._run_battery(report.categories)
        except CriticalPreconditionTimeout as exc:
            self.logger.error("Monitoring aborted: %s", exc)
            report.fatal_error = str(exc)
        except Exception as exc:
            self.logger.exception("Monitoring failed unexpectedly")
            report.fatal_error = f"{type(exc).__name__}: {exc}"
        else:
            self.logger.info("Locator monitoring complete")

        if report.mining_suggested:
            self.logger.warning("%s locators failed, suggesting a mining pass", report.failed)
        return report

    async def _run_battery(self, categories: list[HealthCategory]) -> None:
        if self.settings.login_url:
            await self._navigate(self.settings.login_url)
            categories.append(await self.check_login_page())
            if self.login is not None:
                self.logger.info("Attempting login...")
                await self.login(self.document)

        post_login = HealthCategory("POST-LOGIN")
        categories.append(post_login)
        await self.check_post_login(post_login)

        if self.settings.target_url:
            self.logger.info("Navigating to target page...")
            await self._navigate(self.settings.target_url)

        categories.append(await self.check_table())
        categories.append(await self.check_navigation())

    async def _navigate(self, url: str) -> None:
        try:
            await self.document.goto(url, self.settings.page_load_timeout_ms)
        except ProbeTimeout as exc:
            raise CriticalPreconditionTimeout(f"Navigation to {url} timed out") from exc
        except LocatorWatchError as exc:
            raise CriticalPreconditionTimeout(f"Navigation to {url} failed: {exc}") from exc

    async def check_login_page(self) -> HealthCategory:
        return await self._check_section(
            "LOGIN PAGE",
            "login",
            [
                ("emailInput", "Email input field"),
                ("passwordInput", "Password input field"),
                ("submitButton", "Login submit button"),
            ],
        )

    async def check_post_login(self, category: HealthCategory) -> None:
        main_app = self.locators.current.value("postLogin", "mainApp")
        if not main_app:
            category.results.append(ProbeResult("Main app container (no locator configured)", exists=False))
            raise CriticalPreconditionTimeout("No post-login container locator configured")
        try:
            await self.document.wait_for(str(main_app), self.settings.page_load_timeout_ms)
        except ProbeTimeout as exc:
            category.results.append(ProbeResult("Main app container", exists=False, matched_locator=main_app))
            raise CriticalPreconditionTimeout(f"Post-login container never appeared: {exc}") from exc
        except LocatorWatchError as exc:
            category.results.append(
                ProbeResult("Main app container", exists=False, matched_locator=main_app, error=str(exc))
            )
            raise CriticalPreconditionTimeout(f"Post-login container could not be checked: {exc}") from exc
        category.results.append(ProbeResult("Main app container", exists=True, count=1, matched_locator=main_app))
        self.logger.info("Dashboard loaded (main app container found)")

        challenge = self.locators.current.candidates("postLogin", "challenge")
        if challenge:
            category.results.append(await self.check_challenge(challenge, str(main_app)))

        modals = self.locators.current.candidates("modals")
        resolution = await resolve_first_match(self.document, modals, timeout_ms=self.settings.modal_timeout_ms)
        if resolution is None:
            category.results.append(ProbeResult("Modal popups", exists=False, passed=True))
            return
        self.logger.warning("Modal detected post-login: %s", resolution.locator)
        category.results.append(
            ProbeResult(
                "Modal popups",
                exists=True,
                count=resolution.count,
                matched_locator=resolution.locator,
                warning=f"Modal overlay present ({resolution.locator})",
                passed=True,
            )
        )

    async def check_challenge(self, candidates: Sequence[str], main_app: str) -> ProbeResult:
        """Report a bot-verification interstitial and wait for the app to come back behind it."""
        resolution = await resolve_first_match(self.document, candidates)
        if resolution is None:
            return ProbeResult("Bot challenge", exists=False, passed=True)

        self.logger.warning("Bot challenge detected (%s), waiting for it to clear...", resolution.locator)
        warning = f"Bot challenge present ({resolution.locator})"
        cleared = True
        try:
            await self.document.wait_for(main_app, self.settings.page_load_timeout_ms)
        except LocatorWatchError as exc:
            self.logger.error("Bot challenge not passed: %s", exc)
            warning = f"{warning}; challenge not passed"
            cleared = False
        return ProbeResult(
            "Bot challenge",
            exists=True,
            count=resolution.count,
            matched_locator=resolution.locator,
            warning=warning,
            passed=cleared,
        )

    async def check_table(self) -> HealthCategory:
        category = HealthCategory("DATA TABLE")
        current = self.locators.current

        rows = await self.probe_candidates(current.row_selectors, "Data table rows (check if data loaded)")
        if rows.exists and rows.count < LOW_ROW_COUNT:
            rows.warning = f"Only {rows.count} rows found (expected more)"
        category.results.append(rows)
        if not rows.exists or not rows.matched_locator:
            return category

        first_row = await self.document.query(rows.matched_locator)
        if first_row is None:
            category.results.append(ProbeResult("First data row located, but not found", exists=False))
            return category
        cell_result = await self.probe(current.cell_selector, "Table cells in first row", scope=first_row)
        category.results.append(cell_result)
        if cell_result.error:
            return category

        cells = await self.document.query_all(current.cell_selector, scope=first_row)
        if len(cells) < MIN_ROW_CELLS:
            category.results.append(
                ProbeResult(
                    f"Insufficient cells found in first row (expected >= {MIN_ROW_CELLS})",
                    exists=False,
                    count=len(cells),
                )
            )
            return category

        for descriptor in self.descriptors:
            category.results.append(await self.probe_field(descriptor, cells))
        return category

    async def check_navigation(self) -> HealthCategory:
        return await self._check_section(
            "NAVIGATION",
            "navigation",
            [
                ("nextButton", "Next page button"),
                ("pageInput", "Page number input"),
            ],
        )

    async def _check_section(self, name: str, section: str, keys: Sequence[tuple[str, str]]) -> HealthCategory:
        category = HealthCategory(name)
        for key, description in keys:
            category.results.append(await self.probe(self.locators.current.value(section, key), description))
        return category

    async def probe(
        self,
        locator: str | None,
        description: str,
        *,
        scope: Any | None = None,
        timeout_ms: int | None = None,
    ) -> ProbeResult:
        if not locator:
            return ProbeResult(f"{description} (no locator configured)", exists=False)
        try:
            await self.document.wait_for(locator, timeout_ms or self.settings.probe_timeout_ms, scope=scope)
            count = await self.document.count(locator, scope=scope)
        except ProbeTimeout:
            return ProbeResult(description, exists=False, matched_locator=locator)
        except Exception as exc:
            self.logger.warning("%s: locator %r could not be checked: %s", description, locator, exc)
            return ProbeResult(description, exists=False, matched_locator=locator, error=str(exc))
        return ProbeResult(description, exists=True, count=count, matched_locator=locator)

    async def probe_candidates(self, candidates: Sequence[str], description: str) -> ProbeResult:
        resolution = await resolve_first_match(
            self.document,
            candidates,
            timeout_ms=self.settings.short_timeout_ms,
        )
        if resolution is None:
            return ProbeResult(description, exists=False)
        return ProbeResult(description, exists=True, count=resolution.count, matched_locator=resolution.locator)

    async def probe_text(self, cell: Any, candidates: Sequence[str]) -> tuple[str | None, str | None, str | None]:
        """Return the first candidate with a visible match inside ``cell``, its text preview and the last error."""
        error = None
        for locator in candidates:
            try:
                element = await self.document.wait_for(locator, self.settings.short_timeout_ms, scope=cell)
                preview = clean_preview(await self.document.text(element))
            except ProbeTimeout:
                continue
            except Exception as exc:
                self.logger.warning("Locator %r could not be checked: %s", locator, exc)
                error = str(exc)
                continue
            return locator, preview, None
        return None, None, error

    async def probe_field(self, descriptor: FieldDescriptor, cells: Sequence[Any]) -> ProbeResult:
        current = self.locators.current
        description = f"{descriptor.label} in cell {descriptor.cell_index} (using table.{descriptor.field})"
        if descriptor.cell_index >= len(cells):
            return ProbeResult(description, exists=False)
        cell = cells[descriptor.cell_index]

        matched, preview, error = await self.probe_text(cell, current.candidates("table", descriptor.field))
        count = int(matched is not None)
        if descriptor.strategy is ExtractionStrategy.LINK_ATTRIBUTE:
            preview = None
        elif descriptor.strategy is ExtractionStrategy.ALTERNATE_STATE and descriptor.alternate_field:
            description = (
                f"{descriptor.label} in cell {descriptor.cell_index} "
                f"(using table.{descriptor.field}/table.{descriptor.alternate_field})"
            )
            alternate, alternate_preview, alternate_error = await self.probe_text(
                cell,
                current.candidates("table", descriptor.alternate_field),
            )
            count += int(alternate is not None)
            matched = matched or alternate
            preview = preview or alternate_preview
            error = error or alternate_error

        return ProbeResult(
            description,
            exists=matched is not None,
            count=count,
            matched_locator=matched,
            text_preview=preview,
            error=None if matched is not None else error,
        )
