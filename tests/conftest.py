import socket
from unittest.mock import patch

import pytest

from committee_audit import variables
from committee_audit.types import ChainConfig
from committee_audit.utils.converter import ChainConverter
from tests.factory.configs import ChainConfigFactory

UNIT_MARKER = 'unit'
INTEGRATION_MARKER = 'integration'


@pytest.fixture(autouse=True)
def check_test_marks_compatibility(request):
    all_test_markers = {x.name for x in request.node.iter_markers()}

    if not all_test_markers:
        pytest.fail('Test must be marked.')

    elif {UNIT_MARKER, INTEGRATION_MARKER} <= all_test_markers:
        pytest.fail('Test can not be both unit and integration at the same time.')


@pytest.fixture(autouse=True)
def configure_unit_tests(request):
    if request.node.get_closest_marker(UNIT_MARKER):

        def blocked_connect(*args, **kwargs):
            msg = (
                'Network access deprecated in unit test! '
                'Use mocks instead of real network calls. '
                f'Attempted connection: args={args}, kwargs={kwargs}'
            )
            pytest.fail(msg)

        with patch.object(socket.socket, 'connect', blocked_connect):
            yield
    else:
        yield


@pytest.fixture(autouse=True)
def configure_integration_tests(request):
    if request.node.get_closest_marker(INTEGRATION_MARKER) and not all(variables.CONSENSUS_CLIENT_URI):
        pytest.skip('CONSENSUS_CLIENT_URI must be set in order to run integration tests.')
    yield


@pytest.fixture
def chain_config() -> ChainConfig:
    return ChainConfigFactory.build(slots_per_epoch=32)


@pytest.fixture
def converter(chain_config: ChainConfig) -> ChainConverter:
    return ChainConverter(chain_config)
