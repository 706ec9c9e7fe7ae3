"""Shared pytest fixtures for the storefront tests."""

import pytest
from fastapi.testclient import TestClient

from fotofacil.cart import CartStore
from fotofacil.clients import BackendClient
from fotofacil.models import CartItem
from fotofacil.notifications import Notifier
from fotofacil.storage import MemoryStorage
from mock_services import mock_backend

# 529.982.247-25 has correct check digits
VALID_CPF = "529.982.247-25"


def make_item(photo_id="p1", price_cents=1000, event_id="ev-1", event_title="Corrida 10K", title=None):
    return CartItem(
        photo_id=photo_id,
        event_id=event_id,
        event_title=event_title,
        title=title or f"Foto {photo_id}",
        thumb_url=f"https://cdn.example.com/thumbs/{photo_id}.jpg",
        price_cents=price_cents,
    )


@pytest.fixture
def backend():
    """The mock backend with empty tables."""
    mock_backend.reset_state()
    yield mock_backend
    mock_backend.reset_state()


@pytest.fixture
def client(backend):
    """BackendClient talking to the mock backend in-process."""
    backend_client = BackendClient(client=TestClient(backend.app), anon_key="test-anon-key")
    yield backend_client
    backend_client.close()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def cart(storage):
    return CartStore(storage)


@pytest.fixture
def notifier():
    return Notifier()


def messages(notifier, level=None):
    return [n.message for n in notifier.pending if level is None or n.level == level]
