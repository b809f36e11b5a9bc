import logging
from typing import Mapping, Sequence

from committee_audit.modules.audit.bits import CommitteeIndices, get_committee_indices, hex_bitlist_len
from committee_audit.modules.audit.committees import (
    Committees,
    committees_size,
    expected_length,
    missing_committees,
)
from committee_audit.modules.audit.types import (
    AuditEvent,
    AuditEventKind,
    AuditResult,
    DiscrepancyReason,
    DiscrepancyRecord,
    EpochBlocks,
    EventSink,
    SkippedSlot,
    SkipReason,
)
from committee_audit.providers.consensus.types import BlockAttestation
from committee_audit.types import EpochNumber, SlotNumber
from committee_audit.utils.converter import ChainConverter

logger = logging.getLogger(__name__)

EVENT_LOG_LEVELS = {
    AuditEventKind.DISCREPANCY: logging.ERROR,
    AuditEventKind.ASSIGNMENT_UNAVAILABLE: logging.WARNING,
    AuditEventKind.MALFORMED_ATTESTATION: logging.WARNING,
    AuditEventKind.COMMITTEE_SIZE: logging.INFO,
}


def log_event(event: AuditEvent) -> None:
    logger.log(
        EVENT_LOG_LEVELS[event.kind],
        {'msg': f'Audit event: {event.kind}', 'kind': event.kind, 'slot': event.slot, **event.payload},
    )


class ConsistencyChecker:
    """
    Compares aggregation bits length of every attestation included in the epoch blocks
    with the size of the committees the attestation aggregates.

    Attestations for the duty slot N are expected to be included into the block at slot N + 1,
    so the committees are looked up by the slot previous to the block slot.
    Attestations included later than the next slot are not checked.

    Works on the already fetched data only and doesn't modify it.
    """

    converter: ChainConverter

    def __init__(self, converter: ChainConverter, on_event: EventSink = log_event):
        self.converter = converter
        self.on_event = on_event

    def check_epoch(
        self,
        epoch: EpochNumber,
        blocks: EpochBlocks,
        assignment: Mapping[SlotNumber, Committees],
    ) -> AuditResult:
        result = AuditResult(
            epoch=epoch,
            first_slot=self.converter.get_epoch_first_slot(epoch),
            last_slot=self.converter.get_epoch_last_slot(epoch),
        )

        for slot in self.converter.get_epoch_slots(epoch):
            block_slot = SlotNumber(slot)
            attestations = blocks.get(block_slot)
            if attestations is None:
                # Missed slot
                continue
            if block_slot == 0:
                # Genesis block has no duty slot to attest for
                continue
            self._check_block(block_slot, attestations, assignment, result)

        return result

    def _check_block(
        self,
        block_slot: SlotNumber,
        attestations: Sequence[BlockAttestation],
        assignment: Mapping[SlotNumber, Committees],
        result: AuditResult,
    ) -> None:
        duty_slot = SlotNumber(block_slot - 1)

        committees = assignment.get(duty_slot)
        if committees is None:
            self.on_event(AuditEvent(AuditEventKind.ASSIGNMENT_UNAVAILABLE, duty_slot, {'block_slot': block_slot}))

        malformed: list[str] = []
        for attestation in attestations:
            if attestation.data.slot != duty_slot:
                continue
            try:
                selected = get_committee_indices(attestation)
                actual_length = hex_bitlist_len(attestation.aggregation_bits)
            except ValueError as error:
                malformed.append(str(error))
                self.on_event(AuditEvent(
                    AuditEventKind.MALFORMED_ATTESTATION,
                    duty_slot,
                    {'block_slot': block_slot, 'error': str(error)},
                ))
                continue
            self._check_attestation(block_slot, duty_slot, attestation, selected, actual_length, committees, result)

        if malformed:
            # One entry per block, however many of its attestations can't be decoded
            result.skipped.append(SkippedSlot(block_slot, SkipReason.MALFORMED_ATTESTATION, '; '.join(malformed)))

        result.committee_sizes[duty_slot] = committees_size(committees or {})
        self.on_event(AuditEvent(
            AuditEventKind.COMMITTEE_SIZE,
            duty_slot,
            {'block_slot': block_slot, 'committee_length': result.committee_sizes[duty_slot]},
        ))

    def _check_attestation(
        self,
        block_slot: SlotNumber,
        duty_slot: SlotNumber,
        attestation: BlockAttestation,
        selected: CommitteeIndices,
        actual_length: int,
        committees: Committees | None,
        result: AuditResult,
    ) -> None:
        result.checked_attestations += 1
        computed_length = expected_length(committees or {}, selected)
        if computed_length == actual_length:
            return

        if committees is None:
            reason = DiscrepancyReason.ASSIGNMENT_UNAVAILABLE
        elif missing_committees(committees, selected):
            reason = DiscrepancyReason.COMMITTEE_UNAVAILABLE
        else:
            reason = DiscrepancyReason.LENGTH_MISMATCH

        record = DiscrepancyRecord(
            duty_slot=duty_slot,
            block_slot=block_slot,
            attestation_data_slot=attestation.data.slot,
            computed_length=computed_length,
            actual_length=actual_length,
            reason=reason,
        )
        result.discrepancies.append(record)
        self.on_event(AuditEvent(
            AuditEventKind.DISCREPANCY,
            duty_slot,
            {
                'block_slot': block_slot,
                'attestation_slot': record.attestation_data_slot,
                'computed': computed_length,
                'actual': actual_length,
                'reason': reason,
            },
        ))
