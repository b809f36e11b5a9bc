import os
from typing import Final

# - Providers -
CONSENSUS_CLIENT_URI: Final = os.getenv('CONSENSUS_CLIENT_URI', '').split(',')

# HTTP variables
HTTP_REQUEST_TIMEOUT_CONSENSUS: Final = int(os.getenv('HTTP_REQUEST_TIMEOUT_CONSENSUS', 60))
HTTP_REQUEST_RETRY_COUNT_CONSENSUS: Final = int(os.getenv('HTTP_REQUEST_RETRY_COUNT_CONSENSUS', 5))
HTTP_REQUEST_SLEEP_BEFORE_RETRY_IN_SECONDS_CONSENSUS: Final = int(
    os.getenv('HTTP_REQUEST_SLEEP_BEFORE_RETRY_IN_SECONDS_CONSENSUS', 5)
)

# - Chain -
# Taken from the node spec endpoint if not set
SLOTS_PER_EPOCH: Final[int | None] = int(os.getenv('SLOTS_PER_EPOCH', 0)) or None

# - App specific -
AUDIT_MAX_CONCURRENCY: Final = min(32, int(os.getenv('AUDIT_MAX_CONCURRENCY', 4)))
assert AUDIT_MAX_CONCURRENCY > 0, "AUDIT_MAX_CONCURRENCY must be more than 0"

# Overall limit for the blocks retrieval. Slots not fetched in time are reported as skipped
AUDIT_DEADLINE_IN_SECONDS: Final = int(os.getenv('AUDIT_DEADLINE_IN_SECONDS', 10 * 60))
AUDIT_FAIL_FAST: Final = os.getenv('AUDIT_FAIL_FAST', 'False').lower() == 'true'

# - Metrics -
PROMETHEUS_PORT: Final[int | None] = int(os.getenv('PROMETHEUS_PORT', 0)) or None
PROMETHEUS_PREFIX: Final = os.getenv("PROMETHEUS_PREFIX", "committee_audit")


def check_required_variables():
    required_uris = {
        'CONSENSUS_CLIENT_URI': CONSENSUS_CLIENT_URI,
    }
    return [name for name, uri in required_uris.items() if '' in uri]


def raise_from_errors(errors):
    if errors:
        raise ValueError("The following variables are required: " + ", ".join(errors))


# All non-private env variables to the logs in main
PUBLIC_ENV_VARS = {
    key: str(value)
    for key, value in {
        'HTTP_REQUEST_TIMEOUT_CONSENSUS': HTTP_REQUEST_TIMEOUT_CONSENSUS,
        'HTTP_REQUEST_RETRY_COUNT_CONSENSUS': HTTP_REQUEST_RETRY_COUNT_CONSENSUS,
        'HTTP_REQUEST_SLEEP_BEFORE_RETRY_IN_SECONDS_CONSENSUS': HTTP_REQUEST_SLEEP_BEFORE_RETRY_IN_SECONDS_CONSENSUS,
        'SLOTS_PER_EPOCH': SLOTS_PER_EPOCH,
        'AUDIT_MAX_CONCURRENCY': AUDIT_MAX_CONCURRENCY,
        'AUDIT_DEADLINE_IN_SECONDS': AUDIT_DEADLINE_IN_SECONDS,
        'AUDIT_FAIL_FAST': AUDIT_FAIL_FAST,
        'PROMETHEUS_PORT': PROMETHEUS_PORT,
        'PROMETHEUS_PREFIX': PROMETHEUS_PREFIX,
    }.items()
}

PRIVATE_ENV_VARS = {
    'CONSENSUS_CLIENT_URI': CONSENSUS_CLIENT_URI,
}

assert not set(PRIVATE_ENV_VARS.keys()).intersection(set(PUBLIC_ENV_VARS.keys()))
