"""
SSZ bit containers as they come from the Beacon API.

Bitvector: fixed width, bits packed little-endian within each byte.
Bitlist: same packing plus a delimiter bit set right after the last element,
so its length is the position of the highest set bit.

@see https://github.com/ethereum/consensus-specs/blob/dev/ssz/simple-serialize.md#bitvectorn
"""
from dataclasses import dataclass
from typing import Iterator

from committee_audit.providers.consensus.types import BlockAttestation
from committee_audit.types import CommitteeIndex


def hex_str_to_bytes(hex_str: str) -> bytes:
    return bytes.fromhex(hex_str[2:]) if hex_str.startswith("0x") else bytes.fromhex(hex_str)


@dataclass(frozen=True)
class CommitteeIndices:
    """Committee indices selected by a bitvector. Can be iterated any number of times."""
    bits: bytes

    def __iter__(self) -> Iterator[CommitteeIndex]:
        for byte_index, byte in enumerate(self.bits):
            if not byte:
                continue
            for bit_index in range(8):
                if (byte >> bit_index) & 1:
                    yield CommitteeIndex(byte_index * 8 + bit_index)

    def __len__(self) -> int:
        return sum(byte.bit_count() for byte in self.bits)

    @classmethod
    def from_hex(cls, bitvector: str) -> 'CommitteeIndices':
        return cls(hex_str_to_bytes(bitvector))


def get_committee_indices(attestation: BlockAttestation) -> CommitteeIndices:
    return CommitteeIndices.from_hex(attestation.committee_bits)


def hex_bitlist_len(bitlist: str) -> int:
    bytes_ = hex_str_to_bytes(bitlist)
    if not bytes_ or bytes_[-1] == 0:
        raise ValueError(f"Got invalid {bitlist=}")
    return int.from_bytes(bytes_, "little").bit_length() - 1
