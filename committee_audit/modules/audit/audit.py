import logging
from collections import Counter

from committee_audit.metrics.prometheus.audit import (
    AUDIT_CHECKED_ATTESTATIONS_COUNT,
    AUDIT_DISCREPANCIES_COUNT,
    AUDIT_DURATION,
    AUDIT_EPOCH,
    AUDIT_SKIPPED_SLOTS_COUNT,
)
from committee_audit.modules.audit.checker import ConsistencyChecker
from committee_audit.modules.audit.fetcher import EpochDataFetcher
from committee_audit.modules.audit.types import AuditResult, DiscrepancyReason, SkipReason
from committee_audit.types import EpochNumber

logger = logging.getLogger(__name__)


class CommitteeAudit:
    """
    One-shot audit of the epoch: committees are fetched first since nothing can be checked without them,
    then the epoch blocks, then every attestation is checked against the committees.
    """

    def __init__(self, fetcher: EpochDataFetcher, checker: ConsistencyChecker):
        self.fetcher = fetcher
        self.checker = checker

    @AUDIT_DURATION.time()
    def run_audit(self, epoch: EpochNumber) -> AuditResult:
        logger.info({'msg': f'Run committee audit for epoch {epoch}'})

        assignment = self.fetcher.fetch_committee_assignment(epoch)
        snapshot = self.fetcher.fetch_blocks(epoch)
        result = self.checker.check_epoch(epoch, snapshot.blocks, assignment)
        result.skipped = sorted([*snapshot.skipped, *result.skipped], key=lambda skipped_slot: skipped_slot.slot)

        self._update_metrics(result)
        log_result(result)
        return result

    @staticmethod
    def _update_metrics(result: AuditResult) -> None:
        AUDIT_EPOCH.set(result.epoch)
        AUDIT_CHECKED_ATTESTATIONS_COUNT.set(result.checked_attestations)

        discrepancies = Counter(record.reason for record in result.discrepancies)
        for discrepancy_reason in DiscrepancyReason:
            AUDIT_DISCREPANCIES_COUNT.labels(discrepancy_reason.value).set(discrepancies[discrepancy_reason])

        skipped = Counter(skipped_slot.reason for skipped_slot in result.skipped)
        for skip_reason in SkipReason:
            AUDIT_SKIPPED_SLOTS_COUNT.labels(skip_reason.value).set(skipped[skip_reason])


def log_result(result: AuditResult) -> None:
    logger.info({
        'msg': f'Audit for epoch {result.epoch} finished',
        'first_slot': result.first_slot,
        'last_slot': result.last_slot,
        'checked_attestations': result.checked_attestations,
        'discrepancies_count': len(result.discrepancies),
        'committee_sizes': {str(slot): size for slot, size in result.committee_sizes.items()},
        'skipped': result.skipped,
    })
