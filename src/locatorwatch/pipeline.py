from __future__ import annotations

import logging

from .config_updater import ConfigUpdater
from .document import DocumentQuery
from .errors import ConfigWriteFailure, CriticalPreconditionTimeout, LocatorWatchError, RowDetectionFailure
from .field_miner import FieldMiner, MinerProbes
from .locator_store import LocatorStore
from .models import MiningPassOutcome, MiningResult
from .selector_rules import DEFAULT_CLASS_PREFIX
from .validation import LocatorValidator

logger = logging.getLogger("locatorwatch.pipeline")


async def run_mining_pass(
    document: DocumentQuery,
    store: LocatorStore,
    *,
    class_prefix: str = DEFAULT_CLASS_PREFIX,
    probes: MinerProbes | None = None,
    self_test: bool = True,
) -> MiningPassOutcome:
    """Mine, validate and persist locators for the page currently open in ``document``.

    Pass-level failures come back as the outcome's ``status`` instead of
    being raised, so callers can always report what happened.
    """
    locators = store.load()
    miner = FieldMiner(document, locators, class_prefix=class_prefix, probes=probes)
    try:
        mining = await miner.mine()
    except RowDetectionFailure as exc:
        logger.error("%s", exc)
        return MiningPassOutcome(status="row_detection_failed", mining=exc.result, error=str(exc))
    except CriticalPreconditionTimeout as exc:
        logger.error("Mining aborted: %s", exc)
        return MiningPassOutcome(status="aborted", mining=MiningResult(), error=str(exc))
    except LocatorWatchError as exc:
        logger.error("Mining aborted, the page rejected a query: %s", exc)
        return MiningPassOutcome(status="aborted", mining=MiningResult(), error=str(exc))

    report = await LocatorValidator(document).validate(mining)
    if not report.accepted:
        logger.warning("Mined locators failed validation, not updating")
        return MiningPassOutcome(status="rejected", mining=mining, validation=report)

    updater = ConfigUpdater(store, document if self_test else None)
    try:
        update = await updater.apply(locators, mining, report)
    except ConfigWriteFailure as exc:
        logger.error("Locator update failed, backup kept at %s: %s", store.backup_path, exc)
        return MiningPassOutcome(status="write_failed", mining=mining, validation=report, error=str(exc))

    status = "updated" if update.written else "unchanged"
    return MiningPassOutcome(status=status, mining=mining, validation=report, update=update)
