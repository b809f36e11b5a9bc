from committee_audit.types import ChainConfig, EpochNumber, SlotNumber


class ChainConverter:
    """
    Converts between slot and epoch numbers using the slots per epoch value of the audited chain.

    https://github.com/ethereum/consensus-specs/blob/dev/specs/phase0/beacon-chain.md#compute_start_slot_at_epoch
    """
    chain_config: ChainConfig

    def __init__(self, chain_config: ChainConfig):
        self.chain_config = chain_config

    def get_epoch_first_slot(self, epoch: EpochNumber) -> SlotNumber:
        return SlotNumber(epoch * self.chain_config.slots_per_epoch)

    def get_epoch_last_slot(self, epoch: EpochNumber) -> SlotNumber:
        return SlotNumber(self.get_epoch_first_slot(EpochNumber(epoch + 1)) - 1)

    def get_epoch_by_slot(self, slot: SlotNumber) -> EpochNumber:
        return EpochNumber(slot // self.chain_config.slots_per_epoch)

    def get_epoch_slots(self, epoch: EpochNumber) -> range:
        """Returns inclusive range of the epoch slots [first;last]"""
        return range(self.get_epoch_first_slot(epoch), self.get_epoch_last_slot(epoch) + 1)

    def is_slot_in_epoch(self, slot: SlotNumber, epoch: EpochNumber) -> bool:
        return self.get_epoch_first_slot(epoch) <= slot <= self.get_epoch_last_slot(epoch)
