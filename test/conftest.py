from __future__ import annotations

import pytest

from netfuture.request import RequestFunction, promisify_request

from . import FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def request_fn(transport: FakeTransport) -> RequestFunction:
    return promisify_request(transport)
