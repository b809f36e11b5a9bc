import threading
import time
from http import HTTPStatus
from unittest.mock import Mock

import pytest

from committee_audit.modules.audit.fetcher import (
    BLOCKS_FETCHER_THREAD_PREFIX,
    CommitteeAssignmentUnavailable,
    EpochDataFetcher,
    IncompleteEpochData,
    InconsistentData,
)
from committee_audit.modules.audit.types import SkipReason
from committee_audit.providers.consensus.client import ConsensusClientError
from committee_audit.providers.http_provider import time_left
from committee_audit.types import EpochNumber, SlotNumber
from tests.factory.configs import BlockAttestationFactory, SlotAttestationCommitteeFactory

EPOCH = EpochNumber(100)
MISSED_SLOTS = {3205, 3220}


def get_block_attestations(slot: SlotNumber, deadline: float | None = None):
    if slot in MISSED_SLOTS:
        return None
    return [BlockAttestationFactory.build_for(slot - 1, [0], bits_count=4)]


@pytest.fixture
def block_provider():
    return Mock(get_block_attestations=Mock(side_effect=get_block_attestations))


@pytest.fixture
def committee_provider():
    def get_attestation_committees(state_id, epoch):
        first_slot = epoch * 32
        return [
            SlotAttestationCommitteeFactory.build_with_size(slot, index, size=4, first_validator=slot * 100)
            for slot in range(first_slot, first_slot + 32)
            for index in range(2)
        ]

    return Mock(get_attestation_committees=Mock(side_effect=get_attestation_committees))


@pytest.fixture
def fetcher(block_provider, committee_provider, converter) -> EpochDataFetcher:
    return EpochDataFetcher(block_provider, committee_provider, converter, max_concurrency=4, deadline=10)


@pytest.mark.unit
def test_fetch_blocks(fetcher, block_provider):
    snapshot = fetcher.fetch_blocks(EPOCH)

    assert block_provider.get_block_attestations.call_count == 32
    assert sorted(snapshot.blocks) == [s for s in range(3200, 3232) if s not in MISSED_SLOTS]
    assert snapshot.skipped == []
    assert snapshot.blocks[SlotNumber(3200)][0].data.slot == 3199


@pytest.mark.unit
def test_fetch_blocks_retrieval_failure_skips_slot(fetcher, block_provider):
    def flaky(slot, deadline=None):
        if slot == 3210:
            raise ConsensusClientError('Response error.', status=HTTPStatus.INTERNAL_SERVER_ERROR, text='boom')
        return get_block_attestations(slot)

    block_provider.get_block_attestations.side_effect = flaky

    snapshot = fetcher.fetch_blocks(EPOCH)

    assert SlotNumber(3210) not in snapshot.blocks
    assert len(snapshot.blocks) == 32 - len(MISSED_SLOTS) - 1
    assert [(s.slot, s.reason) for s in snapshot.skipped] == [(3210, SkipReason.RETRIEVAL_FAILED)]
    assert 'ConsensusClientError' in snapshot.skipped[0].error


@pytest.mark.unit
def test_fetch_blocks_retrieval_failure_fail_fast(fetcher, block_provider):
    fetcher.fail_fast = True
    block_provider.get_block_attestations.side_effect = ValueError('Block for slot is returned for another slot')

    with pytest.raises(IncompleteEpochData):
        fetcher.fetch_blocks(EPOCH)


def honoring_deadline(slow_slots: set[int]):
    """Block provider which requests for `slow_slots` hang until the deadline, as the consensus client does"""

    def get_block_attestations_slowly(slot: SlotNumber, deadline: float | None = None):
        if slot in slow_slots:
            while time_left(deadline) > 0:
                time.sleep(time_left(deadline))
            raise ConsensusClientError('Deadline exceeded.', status=0, text='Deadline exceeded.')
        return get_block_attestations(slot)

    return get_block_attestations_slowly


def fetcher_threads() -> list[threading.Thread]:
    return [
        thread
        for thread in threading.enumerate()
        if thread.name.startswith(BLOCKS_FETCHER_THREAD_PREFIX) and thread.is_alive()
    ]


@pytest.mark.unit
def test_fetch_blocks_passes_deadline(fetcher, block_provider):
    started = time.monotonic()

    fetcher.fetch_blocks(EPOCH)

    deadlines = {call.kwargs['deadline'] for call in block_provider.get_block_attestations.call_args_list}
    assert len(deadlines) == 1
    assert started + fetcher.deadline <= deadlines.pop() <= time.monotonic() + fetcher.deadline


@pytest.mark.unit
def test_fetch_blocks_deadline(fetcher, block_provider):
    block_provider.get_block_attestations.side_effect = honoring_deadline({3230, 3231})
    fetcher.deadline = 1

    snapshot = fetcher.fetch_blocks(EPOCH)

    assert [(s.slot, s.reason) for s in snapshot.skipped] == [
        (3230, SkipReason.DEADLINE_EXCEEDED),
        (3231, SkipReason.DEADLINE_EXCEEDED),
    ]
    assert sorted(snapshot.blocks) == [s for s in range(3200, 3230) if s not in MISSED_SLOTS]


@pytest.mark.unit
def test_fetch_blocks_deadline_leaves_no_running_workers(fetcher, block_provider):
    block_provider.get_block_attestations.side_effect = honoring_deadline({3231})
    fetcher.deadline = 1
    started = time.monotonic()

    snapshot = fetcher.fetch_blocks(EPOCH)

    assert [(s.slot, s.reason) for s in snapshot.skipped] == [(3231, SkipReason.DEADLINE_EXCEEDED)]
    assert fetcher_threads() == []
    assert time.monotonic() - started < 3


@pytest.mark.unit
def test_fetch_blocks_deadline_fail_fast(fetcher, block_provider):
    block_provider.get_block_attestations.side_effect = honoring_deadline({3231})
    fetcher.deadline = 1
    fetcher.fail_fast = True

    with pytest.raises(IncompleteEpochData, match="not retrieved in time"):
        fetcher.fetch_blocks(EPOCH)

    assert fetcher_threads() == []


@pytest.mark.unit
def test_fetch_committee_assignment(fetcher, committee_provider):
    assignment = fetcher.fetch_committee_assignment(EPOCH)

    assert [call.args for call in committee_provider.get_attestation_committees.call_args_list] == [
        (3168, 99),
        (3200, 100),
    ]
    assert sorted(assignment) == list(range(3168, 3232))
    assert assignment[SlotNumber(3199)] == {0: list(range(319900, 319904)), 1: list(range(319900, 319904))}


@pytest.mark.unit
def test_fetch_committee_assignment_genesis_epoch(fetcher, committee_provider):
    assignment = fetcher.fetch_committee_assignment(EpochNumber(0))

    assert [call.args for call in committee_provider.get_attestation_committees.call_args_list] == [(0, 0)]
    assert sorted(assignment) == list(range(0, 32))


@pytest.mark.unit
def test_fetch_committee_assignment_failure(fetcher, committee_provider):
    committee_provider.get_attestation_committees.side_effect = ConsensusClientError(
        'Response error.', status=HTTPStatus.SERVICE_UNAVAILABLE, text='unavailable'
    )

    with pytest.raises(CommitteeAssignmentUnavailable):
        fetcher.fetch_committee_assignment(EPOCH)


@pytest.mark.unit
def test_fetch_committee_assignment_slot_outside_epoch(fetcher, committee_provider):
    committee_provider.get_attestation_committees.side_effect = None
    committee_provider.get_attestation_committees.return_value = [
        SlotAttestationCommitteeFactory.build_with_size(3232, 0, size=4),
    ]

    with pytest.raises(InconsistentData):
        fetcher.fetch_committee_assignment(EPOCH)


@pytest.mark.unit
def test_fetch_committee_assignment_duplicated_committee(fetcher, committee_provider, caplog):
    committee_provider.get_attestation_committees.side_effect = None
    committee_provider.get_attestation_committees.return_value = [
        SlotAttestationCommitteeFactory.build_with_size(3200, 0, size=4),
        SlotAttestationCommitteeFactory.build_with_size(3200, 0, size=5),
    ]

    assignment = {}
    fetcher._fetch_epoch_committees(EPOCH, assignment)  # pylint: disable=protected-access

    assert assignment == {3200: {0: list(range(5))}}
    assert any('Duplicated committee' in record.getMessage() for record in caplog.records)
