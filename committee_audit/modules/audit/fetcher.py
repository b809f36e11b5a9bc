import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Protocol

from committee_audit.modules.audit.types import SkippedSlot, SkipReason
from committee_audit.providers.consensus.types import BlockAttestation, SlotAttestationCommittee
from committee_audit.types import CommitteeAssignment, EpochNumber, SlotNumber
from committee_audit.utils.converter import ChainConverter

logger = logging.getLogger(__name__)

BLOCKS_FETCHER_THREAD_PREFIX = 'blocks-fetcher'


class CommitteeAssignmentUnavailable(Exception):
    pass


class InconsistentData(Exception):
    pass


class IncompleteEpochData(Exception):
    pass


class BlockProvider(Protocol):
    def get_block_attestations(
        self,
        slot: SlotNumber,
        deadline: float | None = None,
    ) -> list[BlockAttestation] | None: ...


class CommitteeProvider(Protocol):
    def get_attestation_committees(
        self,
        state_id: SlotNumber,
        epoch: EpochNumber | None = None,
    ) -> list[SlotAttestationCommittee]: ...


@dataclass
class EpochBlocksSnapshot:
    blocks: dict[SlotNumber, list[BlockAttestation]] = field(default_factory=dict)
    skipped: list[SkippedSlot] = field(default_factory=list)


class EpochDataFetcher:
    """
    Retrieves everything the consistency check needs for a single epoch.

    Blocks are requested concurrently, one request per slot. Retrieval of all the epoch blocks
    is limited by `deadline` seconds. The deadline is passed to the block provider as well, so no request
    outlives it and `fetch_blocks` returns with no worker thread left running.
    A slot which block can't be retrieved is reported as skipped unless `fail_fast` is set,
    in which case the audit is aborted.
    """

    def __init__(
        self,
        block_provider: BlockProvider,
        committee_provider: CommitteeProvider,
        converter: ChainConverter,
        max_concurrency: int,
        deadline: float,
        fail_fast: bool = False,
    ):
        self.block_provider = block_provider
        self.committee_provider = committee_provider
        self.converter = converter
        self.max_concurrency = max_concurrency
        self.deadline = deadline
        self.fail_fast = fail_fast

    def fetch_blocks(self, epoch: EpochNumber) -> EpochBlocksSnapshot:
        slots = [SlotNumber(slot) for slot in self.converter.get_epoch_slots(epoch)]
        logger.info({'msg': f'Fetch blocks for epoch {epoch}', 'first_slot': slots[0], 'last_slot': slots[-1]})

        snapshot = EpochBlocksSnapshot()
        completed: set[SlotNumber] = set()
        deadline = time.monotonic() + self.deadline

        executor = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix=BLOCKS_FETCHER_THREAD_PREFIX)
        try:
            futures: dict[Future, SlotNumber] = {
                executor.submit(self.block_provider.get_block_attestations, slot, deadline=deadline): slot
                for slot in slots
            }
            for future in as_completed(futures, timeout=max(deadline - time.monotonic(), 0)):
                slot = futures[future]
                completed.add(slot)
                self._collect_block(slot, future, snapshot, deadline)
        except TimeoutError as error:
            incomplete = [slot for slot in slots if slot not in completed]
            logger.error({
                'msg': f'Blocks retrieval deadline of {self.deadline} seconds exceeded',
                'incomplete_slots': incomplete,
            })
            if self.fail_fast:
                raise IncompleteEpochData(f'Blocks for slots {incomplete} are not retrieved in time') from error
            snapshot.skipped.extend(SkippedSlot(slot, SkipReason.DEADLINE_EXCEEDED) for slot in incomplete)
        finally:
            # Requests in flight stop at the deadline, so waiting for them is bounded
            executor.shutdown(wait=True, cancel_futures=True)

        snapshot.skipped.sort(key=lambda skipped_slot: skipped_slot.slot)
        logger.info({
            'msg': f'Blocks for epoch {epoch} fetched',
            'blocks_count': len(snapshot.blocks),
            'skipped_count': len(snapshot.skipped),
        })
        return snapshot

    def _collect_block(self, slot: SlotNumber, future: Future, snapshot: EpochBlocksSnapshot, deadline: float) -> None:
        try:
            attestations = future.result()
        except Exception as error:  # pylint: disable=W0703
            logger.error({'msg': f'Failed to fetch block for slot {slot}', 'error': repr(error)})
            if time.monotonic() >= deadline:
                if self.fail_fast:
                    raise IncompleteEpochData(f'Block for slot {slot} is not retrieved in time') from error
                snapshot.skipped.append(SkippedSlot(slot, SkipReason.DEADLINE_EXCEEDED, repr(error)))
                return
            if self.fail_fast:
                raise IncompleteEpochData(f'Block for slot {slot} is not retrieved') from error
            snapshot.skipped.append(SkippedSlot(slot, SkipReason.RETRIEVAL_FAILED, repr(error)))
            return

        if attestations is None:
            # Missed slot
            return
        snapshot.blocks[slot] = attestations

    def fetch_committee_assignment(self, epoch: EpochNumber) -> CommitteeAssignment:
        """
        Committees of the audited epoch and the previous one.
        The first block of the epoch carries attestations for the last slot of the previous epoch.
        """
        assignment: CommitteeAssignment = {}
        for committees_epoch in range(max(epoch - 1, 0), epoch + 1):
            self._fetch_epoch_committees(EpochNumber(committees_epoch), assignment)
        return assignment

    def _fetch_epoch_committees(self, epoch: EpochNumber, assignment: CommitteeAssignment) -> None:
        state_slot = self.converter.get_epoch_first_slot(epoch)
        logger.info({'msg': f'Fetch attestation committees for epoch {epoch}', 'state_slot': state_slot})
        try:
            committees = self.committee_provider.get_attestation_committees(state_slot, epoch)
        except Exception as error:
            raise CommitteeAssignmentUnavailable(f'Committees for epoch {epoch} are not available') from error

        for committee in committees:
            if not self.converter.is_slot_in_epoch(committee.slot, epoch):
                raise InconsistentData(
                    f'Committee {committee.index} for slot {committee.slot} is returned for epoch {epoch}. '
                    'Probably, a problem with the consensus node.'
                )
            slot_committees = assignment.setdefault(committee.slot, {})
            if committee.index in slot_committees:
                logger.warning({
                    'msg': f'Duplicated committee {committee.index} for slot {committee.slot}',
                    'validators': slot_committees[committee.index],
                })
            slot_committees[committee.index] = committee.validators
