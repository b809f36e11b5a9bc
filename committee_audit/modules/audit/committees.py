from typing import Iterable, Mapping, Sequence

from committee_audit.types import CommitteeIndex, ValidatorIndex

type Committees = Mapping[CommitteeIndex, Sequence[ValidatorIndex]]


def expected_length(committees: Committees, selected: Iterable[CommitteeIndex]) -> int:
    """
    Expected aggregation bits length of an attestation aggregating the selected committees.
    A committee missing in the mapping contributes nothing.
    """
    return sum(len(committees.get(committee_index, ())) for committee_index in selected)


def missing_committees(committees: Committees, selected: Iterable[CommitteeIndex]) -> list[CommitteeIndex]:
    return [committee_index for committee_index in selected if committee_index not in committees]


def committees_size(committees: Committees) -> int:
    return sum(len(validators) for validators in committees.values())
