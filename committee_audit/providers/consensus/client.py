import logging
from http import HTTPStatus
from typing import Literal, cast

from committee_audit.metrics.prometheus.basic import CL_REQUESTS_DURATION
from committee_audit.providers.consensus.types import (
    BeaconSpecResponse,
    BlockAttestation,
    BlockAttestationResponse,
    BlockHeaderFullResponse,
    BlockHeaderResponseData,
    SlotAttestationCommittee,
)
from committee_audit.providers.http_provider import (
    HTTPProvider,
    NotOkResponse,
    data_is_dict,
    data_is_list,
)
from committee_audit.types import BlockRoot, EpochNumber, SlotNumber
from committee_audit.utils.dataclass import list_of_dataclasses

logger = logging.getLogger(__name__)

LiteralState = Literal['head', 'genesis', 'finalized', 'justified']


class ConsensusClientError(NotOkResponse):
    pass


class InconsistentProviders(Exception):
    pass


class NotHealthyProvider(Exception):
    pass


class ConsensusClient(HTTPProvider):
    """
    API specifications can be found here
    https://ethereum.github.io/beacon-APIs/

    state_id
    State identifier. Can be one of: "head" (canonical head in node's view), "genesis", "finalized", "justified", <slot>, <hex encoded stateRoot with 0x prefix>.
    """

    PROVIDER_EXCEPTION = ConsensusClientError
    PROMETHEUS_HISTOGRAM = CL_REQUESTS_DURATION

    API_GET_BLOCK_HEADER = 'eth/v1/beacon/headers/{}'
    API_GET_BLOCK_DETAILS = 'eth/v2/beacon/blocks/{}'
    API_GET_ATTESTATION_COMMITTEES = 'eth/v1/beacon/states/{}/committees'
    API_GET_SPEC = 'eth/v1/config/spec'

    def get_config_spec(self) -> BeaconSpecResponse:
        """Spec: https://ethereum.github.io/beacon-APIs/#/Config/getSpec"""
        data, _ = self._get(self.API_GET_SPEC, retval_validator=data_is_dict)
        return BeaconSpecResponse.from_response(**data)

    def get_block_header(self, state_id: SlotNumber | BlockRoot | LiteralState) -> BlockHeaderFullResponse:
        """Spec: https://ethereum.github.io/beacon-APIs/#/Beacon/getBlockHeader"""
        data, meta_data = self._get(
            self.API_GET_BLOCK_HEADER,
            path_params=(state_id,),
            force_raise=self.__raise_last_missed_slot_error,
            retval_validator=data_is_dict,
        )
        return BlockHeaderFullResponse.from_response(data=BlockHeaderResponseData.from_response(**data), **meta_data)

    def get_block_attestations(
        self,
        slot: SlotNumber,
        deadline: float | None = None,
    ) -> list[BlockAttestation] | None:
        """
        Spec: https://ethereum.github.io/beacon-APIs/#/Beacon/getBlockV2

        Returns None if the slot is missed.
        No request is in flight after the deadline, a `time.monotonic()` value.
        """
        try:
            data, _ = self._get(
                self.API_GET_BLOCK_DETAILS,
                path_params=(slot,),
                force_raise=self.__raise_last_missed_slot_error,
                retval_validator=data_is_dict,
                deadline=deadline,
            )
        except NotOkResponse as error:
            if error.status == HTTPStatus.NOT_FOUND:
                logger.debug({'msg': f'Missed slot: {slot}.'})
                return None
            raise

        block_slot = SlotNumber(int(data["message"]["slot"]))
        if block_slot != slot:
            raise ValueError(f'Block for {slot=} is returned for slot {block_slot}')

        return [
            cast(BlockAttestation, BlockAttestationResponse.from_response(**att))
            for att in data["message"]["body"]["attestations"]
        ]

    @list_of_dataclasses(SlotAttestationCommittee.from_response)
    def get_attestation_committees(
        self,
        state_id: SlotNumber | LiteralState,
        epoch: EpochNumber | None = None,
    ) -> list[SlotAttestationCommittee]:
        """Spec: https://ethereum.github.io/beacon-APIs/#/Beacon/getEpochCommittees"""
        data, _ = self._get(
            self.API_GET_ATTESTATION_COMMITTEES,
            path_params=(state_id,),
            query_params={'epoch': epoch},
            retval_validator=data_is_list,
        )
        return cast(list[SlotAttestationCommittee], data)

    def check_providers_consistency(self) -> BeaconSpecResponse:
        """
        Every configured host should be alive and describe the same chain.
        Returns the chain spec of the first host.
        """
        chain_spec: BeaconSpecResponse | None = None

        for provider_index, host in enumerate(self.hosts):
            try:
                data, _ = self._get_without_fallbacks(host, self.API_GET_SPEC, retval_validator=data_is_dict)
            except Exception as error:
                raise NotHealthyProvider(f'Provider [{provider_index}] does not responding.') from error

            curr_chain_spec = BeaconSpecResponse.from_response(**data)
            if chain_spec is None:
                chain_spec = curr_chain_spec
            elif chain_spec != curr_chain_spec:
                raise InconsistentProviders(
                    f'Different chain specs detected for {provider_index=}. '
                    f'Expected {chain_spec=}, got {curr_chain_spec=}.'
                )

        return cast(BeaconSpecResponse, chain_spec)

    def __raise_last_missed_slot_error(self, errors: list[Exception]) -> Exception | None:
        """
        Prioritize NotOkResponse before other exceptions (ConnectionError, TimeoutError).
        If status is 404 slot is missed and this should be handled correctly.
        """
        if len(errors) == len(self.hosts):
            for error in errors:
                if isinstance(error, NotOkResponse) and error.status == HTTPStatus.NOT_FOUND:
                    return error

        return None
