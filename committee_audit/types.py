from dataclasses import dataclass
from typing import NewType

from eth_typing import HexStr

EpochNumber = NewType('EpochNumber', int)
SlotNumber = NewType('SlotNumber', int)
StateRoot = NewType('StateRoot', HexStr)
BlockRoot = NewType('BlockRoot', HexStr)

ValidatorIndex = NewType('ValidatorIndex', int)
CommitteeIndex = NewType('CommitteeIndex', int)

type SlotCommittees = dict[CommitteeIndex, list[ValidatorIndex]]
type CommitteeAssignment = dict[SlotNumber, SlotCommittees]


@dataclass(frozen=True)
class ChainConfig:
    slots_per_epoch: int

    def __post_init__(self):
        if self.slots_per_epoch < 1:
            raise ValueError(f'Slots per epoch should be positive, got {self.slots_per_epoch=}')
