"""
Tier scheduler — fan out within a tier, fan in before the next.

Modules in one tier run concurrently with no relative ordering; tier k+1
starts only after every action in tier k has settled, success or failure.
An exception escaping one module's work becomes a failed receipt for that
module and never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from modrecovery.core.models.action import Receipt

logger = logging.getLogger(__name__)

ModuleWork = Callable[[str], Awaitable[Receipt]]


@dataclass
class ScheduleReport:
    """Receipts of one scheduled run, keyed by module."""

    tiers: list[list[str]] = field(default_factory=list)
    receipts: dict[str, Receipt] = field(default_factory=dict)

    @property
    def failed_modules(self) -> list[str]:
        return [m for m, r in self.receipts.items() if r.failed]

    @property
    def succeeded_modules(self) -> list[str]:
        return [m for m, r in self.receipts.items() if r.settled_ok]

    @property
    def all_ok(self) -> bool:
        return not self.failed_modules

    def errors(self) -> list[str]:
        return [f"[{m}] {r.error}" for m, r in self.receipts.items() if r.failed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "tiers": self.tiers,
            "succeeded": self.succeeded_modules,
            "failed": self.failed_modules,
            "receipts": {m: r.model_dump(mode="json") for m, r in self.receipts.items()},
        }


async def run_concurrently(module_ids: Iterable[str], work: ModuleWork) -> dict[str, Receipt]:
    """Run ``work`` for every module at once and wait for all of them."""
    modules = list(module_ids)
    outcomes = await asyncio.gather(*(work(m) for m in modules), return_exceptions=True)

    receipts: dict[str, Receipt] = {}
    for module_id, outcome in zip(modules, outcomes, strict=True):
        if isinstance(outcome, Receipt):
            receipts[module_id] = outcome
        elif isinstance(outcome, Exception):
            logger.error("Work for %s raised: %s", module_id, outcome)
            receipts[module_id] = Receipt.failure(
                adapter="engine",
                action_id=f"module:{module_id}",
                error=f"Unexpected error: {outcome}",
            )
        else:
            raise outcome
    return receipts


async def run_tiers(tiers: list[list[str]], work: ModuleWork) -> ScheduleReport:
    """Run tiers strictly in order, modules within a tier concurrently."""
    report = ScheduleReport(tiers=[list(t) for t in tiers])
    for index, tier in enumerate(tiers, start=1):
        logger.debug("Tier %d/%d: %s", index, len(tiers), ", ".join(tier))
        report.receipts.update(await run_concurrently(tier, work))
    return report
