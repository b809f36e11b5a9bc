import sys

from prometheus_client import start_http_server

from committee_audit import variables
from committee_audit.metrics.logging import logging
from committee_audit.metrics.prometheus.basic import ENV_VARIABLES_INFO
from committee_audit.modules.audit.audit import CommitteeAudit
from committee_audit.modules.audit.checker import ConsistencyChecker
from committee_audit.modules.audit.fetcher import EpochDataFetcher
from committee_audit.providers.consensus.client import ConsensusClient
from committee_audit.types import ChainConfig, EpochNumber
from committee_audit.utils.converter import ChainConverter

logger = logging.getLogger(__name__)

FINALIZED_EPOCH_ARG = 'finalized'


def main(epoch_arg: str) -> int:
    logger.info({
        'msg': 'Committee audit startup.',
        'variables': variables.PUBLIC_ENV_VARS,
    })
    ENV_VARIABLES_INFO.info(variables.PUBLIC_ENV_VARS)

    if variables.PROMETHEUS_PORT:
        logger.info({'msg': f'Start http server with prometheus metrics on port {variables.PROMETHEUS_PORT}'})
        start_http_server(variables.PROMETHEUS_PORT)

    logger.info({'msg': 'Initialize consensus client.'})
    cc = ConsensusClient(
        variables.CONSENSUS_CLIENT_URI,
        variables.HTTP_REQUEST_TIMEOUT_CONSENSUS,
        variables.HTTP_REQUEST_RETRY_COUNT_CONSENSUS,
        variables.HTTP_REQUEST_SLEEP_BEFORE_RETRY_IN_SECONDS_CONSENSUS,
    )

    logger.info({'msg': 'Check configured providers.'})
    chain_spec = cc.check_providers_consistency()

    chain_config = ChainConfig(slots_per_epoch=variables.SLOTS_PER_EPOCH or chain_spec.SLOTS_PER_EPOCH)
    converter = ChainConverter(chain_config)
    epoch = resolve_epoch(epoch_arg, cc, converter)

    fetcher = EpochDataFetcher(
        cc,
        cc,
        converter,
        max_concurrency=variables.AUDIT_MAX_CONCURRENCY,
        deadline=variables.AUDIT_DEADLINE_IN_SECONDS,
        fail_fast=variables.AUDIT_FAIL_FAST,
    )
    audit = CommitteeAudit(fetcher, ConsistencyChecker(converter))
    result = audit.run_audit(epoch)

    return 0 if result.ok else 1


def resolve_epoch(epoch_arg: str, cc: ConsensusClient, converter: ChainConverter) -> EpochNumber:
    """
    Epoch number as is, or the epoch before the finalized checkpoint.
    Blocks of the finalized checkpoint epoch itself may be not finalized yet.
    """
    if epoch_arg == FINALIZED_EPOCH_ARG:
        finalized_slot = cc.get_block_header(FINALIZED_EPOCH_ARG).data.header.message.slot
        epoch = EpochNumber(converter.get_epoch_by_slot(finalized_slot) - 1)
        logger.info({'msg': f'Resolved finalized epoch to {epoch}', 'finalized_slot': finalized_slot})
    else:
        try:
            epoch = EpochNumber(int(epoch_arg))
        except ValueError as error:
            raise ValueError(f'Last arg should be an epoch number or "{FINALIZED_EPOCH_ARG}", received {epoch_arg}.') from error

    if epoch < 0:
        raise ValueError(f'Epoch should not be negative, got {epoch}.')
    return epoch


if __name__ == '__main__':
    errors = variables.check_required_variables()
    variables.raise_from_errors(errors)
    sys.exit(main(sys.argv[-1]))
