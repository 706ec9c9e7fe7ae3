"""Tests for delivery link validation and downloads."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import VALID_CPF, make_item, messages
from fotofacil.checkout import build_order_request
from fotofacil.clients import BackendError
from fotofacil.delivery import (
    EXPIRED_TITLE,
    GENERIC_ERROR,
    DeliveryGate,
    DeliveryState,
    download_filename,
)
from fotofacil.models import CheckoutFormData

FORM = CheckoutFormData(name="João Souza", email="joao@example.com", cpf=VALID_CPF)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def gate(client, notifier, sleep):
    return DeliveryGate(client, notifier, sleep=sleep)


def place_order(client, backend, *photos, paid=True):
    """Creates an order for `photos` ((photo_id, price) pairs) and returns (order_id, token)."""
    items = [make_item(photo_id, price, title=f"Foto {photo_id}") for photo_id, price in photos]
    payment = client.create_order(build_order_request(FORM, items))
    if paid:
        backend.approve_payment(payment.order_id)
    order = backend.ORDERS[payment.order_id]
    return payment.order_id, order["delivery_token"]


class TestOpen:
    def test_valid_link(self, gate, client, backend):
        backend.add_photo("p1", 1000)
        backend.add_photo("p2", 1500)
        order_id, token = place_order(client, backend, ("p1", 1000), ("p2", 1500))

        view = gate.open(order_id, token)
        assert view.state == DeliveryState.READY
        assert view.order.id == order_id
        assert view.order.status == "paid"
        assert [i.title_snapshot for i in view.items] == ["Foto p1", "Foto p2"]
        assert len(view.downloadable) == 2
        assert backend.ORDERS[order_id]["delivered_at"] is not None

    def test_missing_parts(self, gate):
        view = gate.open("", "abc")
        assert view.state == DeliveryState.EXPIRED
        assert view.title == EXPIRED_TITLE
        assert view.error == "Link inválido"

    def test_wrong_token(self, gate, client, backend):
        backend.add_photo("p1", 1000)
        order_id, _ = place_order(client, backend, ("p1", 1000))
        view = gate.open(order_id, "not-the-token")
        assert view.state == DeliveryState.EXPIRED
        assert view.error == "Link inválido"

    def test_unpaid_order(self, gate, client, backend):
        backend.add_photo("p1", 1000)
        order_id, token = place_order(client, backend, ("p1", 1000), paid=False)
        view = gate.open(order_id, token)
        assert view.state == DeliveryState.EXPIRED
        assert view.error == "Pagamento não confirmado"

    def test_expired_link(self, gate, client, backend):
        backend.add_photo("p1", 1000)
        order_id, token = place_order(client, backend, ("p1", 1000))
        backend.ORDERS[order_id]["delivery_expires_at"] = datetime.now(timezone.utc) - timedelta(minutes=1)
        view = gate.open(order_id, token)
        assert view.state == DeliveryState.EXPIRED
        assert view.error.startswith("Este link expirou")
        assert view.items == []

    def test_backend_unreachable(self, notifier):
        class DownClient:
            def validate_delivery(self, order_id, token):
                raise BackendError("connection refused")

        view = DeliveryGate(DownClient(), notifier).open("o1", "t1")
        assert view.state == DeliveryState.EXPIRED
        assert view.error == GENERIC_ERROR


class TestDownloads:
    def test_requires_valid_link(self, gate, tmp_path):
        gate.open("", "")
        with pytest.raises(RuntimeError):
            gate.download_all(tmp_path)

    def test_download_all_continues_past_failures(self, gate, client, backend, notifier, sleep, tmp_path):
        backend.add_photo("p1", 1000)
        backend.add_photo("p2", 1000, url="http://testserver/mock/assets/missing.jpg")
        backend.add_photo("p3", 1000)
        order_id, token = place_order(client, backend, ("p1", 1000), ("p2", 1000), ("p3", 1000))
        gate.open(order_id, token)

        saved = gate.download_all(tmp_path)

        assert [p.name for p in saved] == ["Foto p1.jpg", "Foto p3.jpg"]
        assert (tmp_path / "Foto p1.jpg").read_bytes() == b"JPEG:p1"
        assert sleep.calls == [0.5, 0.5, 0.5]
        assert messages(notifier) == [
            "Iniciando downloads...",
            "Download iniciado!",
            "Erro ao baixar arquivo",
            "Download iniciado!",
            "Todos os downloads concluídos!",
        ]

    def test_items_without_photo_are_skipped(self, gate, client, backend, sleep, tmp_path):
        backend.add_photo("p1", 1000)
        # p2 is priced from the client snapshot and has no catalogue entry
        order_id, token = place_order(client, backend, ("p1", 1000), ("p2", 800))
        view = gate.open(order_id, token)
        assert len(view.items) == 2
        assert len(view.downloadable) == 1

        assert len(gate.download_all(tmp_path)) == 1
        assert len(sleep.calls) == 1


    def test_same_title_never_overwrites(self, gate, client, backend, tmp_path):
        backend.add_photo("p1", 1000)
        backend.add_photo("p2", 1000)
        items = [make_item("p1", 1000, title="Largada"), make_item("p2", 1000, title="Largada")]
        payment = client.create_order(build_order_request(FORM, items))
        backend.approve_payment(payment.order_id)
        gate.open(payment.order_id, backend.ORDERS[payment.order_id]["delivery_token"])

        saved = gate.download_all(tmp_path)

        assert [p.name for p in saved] == ["Largada.jpg", "Largada (1).jpg"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Largada (1).jpg", "Largada.jpg"]
        assert (tmp_path / "Largada.jpg").read_bytes() == b"JPEG:p1"
        assert (tmp_path / "Largada (1).jpg").read_bytes() == b"JPEG:p2"

    def test_existing_file_is_kept(self, gate, client, backend, tmp_path):
        backend.add_photo("p1", 1000)
        order_id, token = place_order(client, backend, ("p1", 1000))
        (tmp_path / "Foto p1.jpg").write_bytes(b"mine")
        gate.open(order_id, token)

        assert [p.name for p in gate.download_all(tmp_path)] == ["Foto p1 (1).jpg"]
        assert (tmp_path / "Foto p1.jpg").read_bytes() == b"mine"


@pytest.mark.parametrize("title, filename", [
    ("Largada 5K", "Largada 5K.jpg"),
    ("a/b:c", "a_b_c.jpg"),
    ("", "foto.jpg"),
    (None, "foto.jpg"),
    ("...", "foto.jpg"),
])
def test_download_filename(title, filename):
    assert download_filename(title) == filename
