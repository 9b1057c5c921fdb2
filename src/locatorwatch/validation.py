from __future__ import annotations

import logging

from .document import DocumentQuery
from .errors import ValidationRejected
from .models import FieldValidation, MiningResult, ValidationReport
from .settings import ACCEPTANCE_THRESHOLD


class LocatorValidator:
    def __init__(self, document: DocumentQuery, threshold: float = ACCEPTANCE_THRESHOLD) -> None:
        self.document = document
        self.threshold = threshold
        self.logger = logging.getLogger("locatorwatch.validator")

    async def validate(self, mining: MiningResult) -> ValidationReport:
        self.logger.info("Validating mined locators...")
        results: list[FieldValidation] = []
        for field_name, locator in mining.locator_mapping().items():
            results.append(await self.validate_locator(field_name, locator))

        report = ValidationReport(fields=tuple(results), threshold=self.threshold)
        self.logger.info(
            "Validation: %s/%s locators valid (%.0f%%), %s",
            report.valid_count,
            report.attempted,
            report.validity * 100,
            "accepted" if report.accepted else "rejected",
        )
        return report

    async def validate_locator(self, field_name: str, locator: str) -> FieldValidation:
        try:
            count = await self.document.count(locator)
            visible = False
            if count > 0:
                first = await self.document.query(locator)
                visible = first is not None and await self.document.is_visible(first)
        except Exception as exc:
            self.logger.warning("%s: error validating %s: %s", field_name, locator, exc)
            return FieldValidation(field_name, locator, 0, False, error=str(exc))

        result = FieldValidation(field_name, locator, count, visible)
        if result.valid:
            self.logger.info("%s: valid (found %s elements)", field_name, count)
        else:
            self.logger.warning("%s: invalid (not found or not visible)", field_name)
        return result


def ensure_accepted(report: ValidationReport) -> ValidationReport:
    if not report.accepted:
        raise ValidationRejected(report)
    return report
