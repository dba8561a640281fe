"""
Tests for HttpSiteToSiteClient against a mocked remote (httpx.MockTransport).
"""

import gzip
import zlib

import httpx
import pytest

from provenance_relay.errors import TransportError
from provenance_relay.transport import HttpSiteToSiteClient, TransactionState
from provenance_relay.transport.http import BAD_CHECKSUM, CANCEL_TRANSACTION, CONFIRM_TRANSACTION
from provenance_relay.transport.packets import iter_packets

API = "http://nifi.test/nifi-api"
TX_PATH = "/nifi-api/data-transfer/input-ports/port-1/transactions/tx-abc"


class FakeRemote:
    """Minimal data-transfer endpoint; behaviour tweakable per test."""

    def __init__(self):
        self.create_status = 201
        self.flow_status = 202
        self.commit_status = 200
        self.wrong_checksum = False
        self.ports = [{"id": "port-1", "name": "Provenance Input"}]
        self.requests = []
        self.received = []
        self.end_codes = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == "/nifi-api/site-to-site":
            return httpx.Response(200, json={"controller": {"inputPorts": self.ports}})

        if request.method == "POST" and path.endswith("/port-1/transactions"):
            if self.create_status != 201:
                return httpx.Response(self.create_status, text="busy")
            return httpx.Response(201, headers={"Location": TX_PATH})

        if request.method == "POST" and path == TX_PATH + "/flow-files":
            body = request.content
            if request.headers.get("Content-Encoding") == "gzip":
                body = gzip.decompress(body)
            self.received.extend(iter_packets(body))
            crc = zlib.crc32(body) + (1 if self.wrong_checksum else 0)
            return httpx.Response(self.flow_status, text=str(crc))

        if request.method == "DELETE" and path == TX_PATH:
            code = int(request.url.params["responseCode"])
            self.end_codes.append(code)
            if code == CONFIRM_TRANSACTION:
                return httpx.Response(self.commit_status, json={"flowFileSent": len(self.received)})
            return httpx.Response(200)

        return httpx.Response(404)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def client(remote):
    c = HttpSiteToSiteClient(API, "Provenance Input", transport=httpx.MockTransport(remote))
    yield c
    c.close()


def test_full_transaction(client, remote):
    tx = client.create_transaction("send")
    assert tx.transaction_id == "tx-abc"
    tx.send(b'[{"eventOrdinal":10}]', {"relay.transaction.id": "t-1"})
    tx.confirm()
    tx.complete()

    assert tx.state == TransactionState.COMPLETED
    assert remote.received == [({"relay.transaction.id": "t-1"}, b'[{"eventOrdinal":10}]')]
    assert remote.end_codes == [CONFIRM_TRANSACTION]

    commit = remote.requests[-1]
    assert commit.url.params["checksum"] == tx.checksum
    assert commit.headers["x-nifi-site-to-site-protocol-version"] == "5"


def test_port_resolved_once(client, remote):
    for _ in range(2):
        tx = client.create_transaction()
        tx.send(b"x", {})
        tx.confirm()
        tx.complete()
    lookups = [r for r in remote.requests if r.url.path.endswith("/site-to-site")]
    assert len(lookups) == 1


def test_gzip_body(remote):
    with HttpSiteToSiteClient(
        API, "Provenance Input", compress=True, transport=httpx.MockTransport(remote)
    ) as c:
        tx = c.create_transaction()
        tx.send(b"payload", {"a": "b"})
        tx.confirm()
        tx.complete()
    flow = [r for r in remote.requests if r.url.path.endswith("/flow-files")][0]
    assert flow.headers["Content-Encoding"] == "gzip"
    assert remote.received == [({"a": "b"}, b"payload")]
    assert c.closed


@pytest.mark.parametrize("status", [503, 429])
def test_backpressure_returns_none(client, remote, status):
    remote.create_status = status
    assert client.create_transaction() is None


def test_create_failure_raises(client, remote):
    remote.create_status = 500
    with pytest.raises(TransportError, match="HTTP 500"):
        client.create_transaction()


def test_unknown_port(client, remote):
    remote.ports = [{"id": "other", "name": "Something Else"}]
    with pytest.raises(TransportError, match="No input port"):
        client.create_transaction()


@pytest.mark.parametrize(
    "ports",
    [
        [{"name": "Provenance Input"}],
        ["Provenance Input"],
        {"name": "Provenance Input", "id": "port-1"},
        42,
    ],
)
def test_malformed_port_listing_is_transport_error(client, remote, ports):
    remote.ports = ports
    with pytest.raises(TransportError, match="Unexpected site-to-site details"):
        client.create_transaction()


def test_checksum_mismatch_fails_and_signals_remote(client, remote):
    remote.wrong_checksum = True
    tx = client.create_transaction()
    tx.send(b"x", {})
    with pytest.raises(TransportError, match="Checksum mismatch"):
        tx.confirm()
    assert tx.state == TransactionState.FAILED
    assert remote.end_codes == [BAD_CHECKSUM]

    # already ended with the bad-checksum code; cancelling sends nothing more
    tx.cancel("checksum mismatch")
    assert remote.end_codes == [BAD_CHECKSUM]


def test_rejected_flow_files(client, remote):
    remote.flow_status = 400
    tx = client.create_transaction()
    tx.send(b"x", {})
    with pytest.raises(TransportError, match="rejected"):
        tx.confirm()
    tx.cancel("rejected")
    assert remote.end_codes == [CANCEL_TRANSACTION]


def test_commit_refused(client, remote):
    remote.commit_status = 500
    tx = client.create_transaction()
    tx.send(b"x", {})
    tx.confirm()
    with pytest.raises(TransportError, match="refused to commit"):
        tx.complete()
    assert tx.state == TransactionState.FAILED


def test_network_error_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with HttpSiteToSiteClient(API, "Provenance Input", transport=httpx.MockTransport(handler)) as c:
        with pytest.raises(TransportError, match="ConnectError"):
            c.create_transaction()


def test_closed_client_rejects_transactions(client):
    client.close()
    with pytest.raises(TransportError, match="closed"):
        client.create_transaction()


def test_only_send_direction_supported(client):
    with pytest.raises(ValueError):
        client.create_transaction("receive")
