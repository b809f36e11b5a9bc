from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Mapping, Sequence

from committee_audit.providers.consensus.types import BlockAttestation
from committee_audit.types import EpochNumber, SlotNumber


class DiscrepancyReason(StrEnum):
    LENGTH_MISMATCH = 'length_mismatch'
    # No committee data at all for the duty slot
    ASSIGNMENT_UNAVAILABLE = 'assignment_unavailable'
    # The duty slot is known, but some of the selected committees are not
    COMMITTEE_UNAVAILABLE = 'committee_unavailable'


class SkipReason(StrEnum):
    RETRIEVAL_FAILED = 'retrieval_failed'
    DEADLINE_EXCEEDED = 'deadline_exceeded'
    MALFORMED_ATTESTATION = 'malformed_attestation'


class AuditEventKind(StrEnum):
    DISCREPANCY = 'discrepancy'
    ASSIGNMENT_UNAVAILABLE = 'assignment_unavailable'
    MALFORMED_ATTESTATION = 'malformed_attestation'
    COMMITTEE_SIZE = 'committee_size'


@dataclass(frozen=True)
class DiscrepancyRecord:
    duty_slot: SlotNumber
    block_slot: SlotNumber
    attestation_data_slot: SlotNumber
    computed_length: int
    actual_length: int
    reason: DiscrepancyReason = DiscrepancyReason.LENGTH_MISMATCH


@dataclass(frozen=True)
class SkippedSlot:
    slot: SlotNumber
    reason: SkipReason
    error: str = ''


@dataclass(frozen=True)
class AuditEvent:
    kind: AuditEventKind
    slot: SlotNumber
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditResult:
    epoch: EpochNumber
    first_slot: SlotNumber
    last_slot: SlotNumber
    discrepancies: list[DiscrepancyRecord] = field(default_factory=list)
    # Total committees membership per duty slot of every checked block
    committee_sizes: dict[SlotNumber, int] = field(default_factory=dict)
    skipped: list[SkippedSlot] = field(default_factory=list)
    checked_attestations: int = 0

    @property
    def ok(self) -> bool:
        return not self.discrepancies


type EventSink = Callable[[AuditEvent], None]
type EpochBlocks = Mapping[SlotNumber, Sequence[BlockAttestation]]
