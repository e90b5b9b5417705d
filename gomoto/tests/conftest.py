"""Fixtures shared by the payment tests."""
from __future__ import annotations

import pytest

from gomoto.app.payments import PaymentsService, load_gateway_config
from gomoto.app.payments.models import ListingPlan
from gomoto.tests.fakes import (
    GATEWAY_ENV,
    FakeGateway,
    FakeNotifier,
    InMemoryPaymentsRepository,
    build_service,
)


@pytest.fixture
def repository() -> InMemoryPaymentsRepository:
    return InMemoryPaymentsRepository()


@pytest.fixture
def plan(repository: InMemoryPaymentsRepository) -> ListingPlan:
    return repository.add_plan()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def gateway_config():
    return load_gateway_config(env=GATEWAY_ENV)


@pytest.fixture
def service(repository, gateway, notifier, gateway_config) -> PaymentsService:
    return build_service(repository, gateway, notifier, gateway_config)
