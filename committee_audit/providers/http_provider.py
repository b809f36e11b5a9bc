import logging
import math
import time
from abc import ABC
from contextlib import AbstractContextManager, nullcontext
from http import HTTPStatus
from typing import Any, Callable, NoReturn, Protocol, Self, Sequence
from urllib.parse import urljoin, urlparse

from prometheus_client import Histogram
from requests import JSONDecodeError, Session
from requests.adapters import HTTPAdapter
from urllib3 import BaseHTTPResponse, Retry, Timeout

logger = logging.getLogger(__name__)


class NoHostsProvided(Exception):
    pass


class NotOkResponse(Exception):
    status: int
    text: str

    def __init__(self, *args, status: int, text: str):
        self.status = status
        self.text = text
        super().__init__(*args)


class ReturnValueValidator(Protocol):
    def __call__(self, data: Any, meta: dict, *, endpoint: str) -> None | NoReturn: ...


def data_is_any(data: Any, meta: dict, *, endpoint: str):
    pass


def data_is_dict(data: Any, meta: dict, *, endpoint: str):
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping response from {endpoint}")


def data_is_list(data: Any, meta: dict, *, endpoint: str):
    if not isinstance(data, list):
        raise ValueError(f"Expected list response from {endpoint}")


MIN_REQUEST_TIMEOUT = 0.01


def time_left(deadline: float | None) -> float:
    """Seconds left before the deadline, a `time.monotonic()` value. No deadline means no limit"""
    if deadline is None:
        return math.inf
    return max(deadline - time.monotonic(), 0)


class DeadlineRetry(Retry):
    """
    Retry strategy which stops at the deadline.
    Neither a retry attempt is made nor a backoff is slept past it.
    """
    deadline: float | None = None

    def new(self, **kw: Any) -> Self:
        retry = super().new(**kw)
        retry.deadline = self.deadline
        return retry

    def is_exhausted(self) -> bool:
        return super().is_exhausted() or time_left(self.deadline) <= 0

    def get_backoff_time(self) -> float:
        return min(super().get_backoff_time(), time_left(self.deadline))

    def get_retry_after(self, response: BaseHTTPResponse) -> float | None:
        retry_after = super().get_retry_after(response)
        if retry_after is None:
            return None
        return min(retry_after, time_left(self.deadline))


class DeadlineTimeout(Timeout):
    """
    Request timeout cut to the time left before the deadline.
    urllib3 clones the timeout for every retry attempt, so each attempt gets the time left at its start.
    """

    def __init__(self, timeout: float, deadline: float):
        self.timeout = timeout
        self.deadline = deadline
        super().__init__(total=self._cut_timeout())

    def _cut_timeout(self) -> float:
        return max(min(self.timeout, time_left(self.deadline)), MIN_REQUEST_TIMEOUT)

    def clone(self) -> Timeout:
        return Timeout(total=self._cut_timeout())


class HTTPProvider(ABC):
    """
    Base HTTP Provider with metrics and retry strategy integrated inside.
    Every request is tried against the hosts in the given order until one of them answers.
    """

    PROMETHEUS_HISTOGRAM: Histogram
    request_timeout: int

    PROVIDER_EXCEPTION = NotOkResponse

    def __init__(
        self,
        hosts: list[str],
        request_timeout: int,
        retry_total: int,
        retry_backoff_factor: int,
    ):
        if not hosts:
            raise NoHostsProvided(f"No hosts provided for {self.__class__.__name__}")

        self.hosts = hosts
        self.request_timeout = request_timeout
        self.retry_count = retry_total
        self.backoff_factor = retry_backoff_factor

        self.retry_strategy = DeadlineRetry(
            total=self.retry_count,
            status_forcelist=[418, 429, 500, 502, 503, 504],
            backoff_factor=self.backoff_factor,
        )
        self.session = self._create_session(self.retry_strategy)

    @staticmethod
    def _create_session(retry_strategy: Retry) -> Session:
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session = Session()
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _session(self, deadline: float | None) -> AbstractContextManager[Session]:
        """Shared session, or a short-lived one whose retries stop at the deadline"""
        if deadline is None:
            return nullcontext(self.session)

        retry_strategy = self.retry_strategy.new()
        retry_strategy.deadline = deadline
        return self._create_session(retry_strategy)

    def _timeout(self, deadline: float | None) -> float | Timeout:
        if deadline is None:
            return self.request_timeout
        return DeadlineTimeout(self.request_timeout, deadline)

    @staticmethod
    def _urljoin(host, url):
        if not host.endswith('/'):
            host += '/'
        return urljoin(host, url.lstrip('/'))

    def _get(
        self,
        endpoint: str,
        path_params: Sequence[str | int] | None = None,
        query_params: dict | None = None,
        force_raise: Callable[..., Exception | None] = lambda _: None,
        retval_validator: ReturnValueValidator = data_is_any,
        deadline: float | None = None,
    ) -> tuple[Any, dict]:
        """
        Get request with fallbacks
        Returns (data, meta) or raises exception

        force_raise - function that returns an Exception if it should be thrown immediately.
        Sometimes NotOk response from every provider is the response that we are expecting.

        deadline - `time.monotonic()` value, no request to any host lasts past it.
        """
        errors: list[Exception] = []

        for host in self.hosts:
            try:
                return self._get_without_fallbacks(
                    host,
                    endpoint,
                    path_params,
                    query_params,
                    retval_validator=retval_validator,
                    deadline=deadline,
                )
            except Exception as e:  # pylint: disable=W0703
                errors.append(e)

                # Check if exception should be raised immediately
                if to_force_raise := force_raise(errors):
                    raise to_force_raise from e

                logger.warning(
                    {
                        'msg': f'[{self.__class__.__name__}] Host [{urlparse(host).netloc}] responded with error',
                        'error': str(e),
                        'provider': urlparse(host).netloc,
                    }
                )

        # Raise error from last provider.
        raise errors[-1]

    def _get_without_fallbacks(
        self,
        host: str,
        endpoint: str,
        path_params: Sequence[str | int] | None = None,
        query_params: dict | None = None,
        retval_validator: ReturnValueValidator = data_is_any,
        deadline: float | None = None,
    ) -> tuple[Any, dict]:
        """
        Simple get request without fallbacks
        Returns (data, meta) or raises an exception
        """
        complete_endpoint = endpoint.format(*path_params) if path_params else endpoint

        if deadline is not None and time_left(deadline) <= 0:
            raise self.PROVIDER_EXCEPTION(
                f'Deadline exceeded before request to {complete_endpoint}.',
                status=0,
                text='Deadline exceeded.',
            )

        with self.PROMETHEUS_HISTOGRAM.time() as t, self._session(deadline) as session:
            try:
                response = session.get(
                    self._urljoin(host, complete_endpoint),
                    params=query_params,
                    timeout=self._timeout(deadline),
                )
            except Exception as error:
                logger.error({'msg': str(error)})
                t.labels(
                    endpoint=endpoint,
                    code=0,
                    domain=urlparse(host).netloc,
                )
                raise self.PROVIDER_EXCEPTION(status=0, text='Response error.') from error

            t.labels(
                endpoint=endpoint,
                code=response.status_code,
                domain=urlparse(host).netloc,
            )

            if response.status_code != HTTPStatus.OK:
                response_fail_msg = (
                    f'Response from {complete_endpoint} [{response.status_code}]'
                    f' with text: "{str(response.text)}" returned.'
                )
                logger.debug({'msg': response_fail_msg})
                raise self.PROVIDER_EXCEPTION(response_fail_msg, status=response.status_code, text=response.text)

            try:
                json_response = response.json()
            except JSONDecodeError as error:
                response_fail_msg = (
                    f'Failed to decode JSON response from {complete_endpoint} with text: "{str(response.text)}"'
                )
                logger.debug({'msg': response_fail_msg})
                raise self.PROVIDER_EXCEPTION(status=0, text='JSON decode error.') from error

        if not isinstance(json_response, dict) or 'data' not in json_response:
            raise self.PROVIDER_EXCEPTION(
                f'Response from {complete_endpoint} has no data field.',
                status=response.status_code,
                text=str(response.text),
            )

        data = json_response.pop('data')
        meta = json_response

        retval_validator(data, meta, endpoint=endpoint)
        return data, meta
