"""
HTTP site-to-site client.

Talks to a remote input port through the data-transfer REST endpoints:

    GET    {api}/site-to-site                                    -> input port ids
    POST   {api}/data-transfer/input-ports/{id}/transactions     -> 201 + Location
    POST   {tx}/flow-files                                       -> 202 + checksum
    DELETE {tx}?responseCode=12&checksum=...                     -> 200 (commit)

One httpx.Client is created when the client is built and reused for every
transaction until close().
"""

from __future__ import annotations

import gzip
import ssl
import zlib
from typing import Dict, Optional, Union

import httpx
from loguru import logger

from ..errors import BackpressureSignal, TransportError, map_http_error
from .packets import encode_packet
from .types import Direction, Transaction

PROTOCOL_VERSION = "5"

# response codes understood by the remote side when ending a transaction
CONFIRM_TRANSACTION = 12
CANCEL_TRANSACTION = 15
BAD_CHECKSUM = 19

_HEADERS = {
    "x-nifi-site-to-site-protocol-version": PROTOCOL_VERSION,
    "Accept": "application/json",
}


class HttpTransaction(Transaction):
    """Transaction bound to one transaction URL on the remote side."""

    def __init__(self, client: httpx.Client, url: str, *, compress: bool = False):
        super().__init__(transaction_id=url.rstrip("/").rsplit("/", 1)[-1])
        self._client = client
        self._url = url
        self._compress = compress
        self._buffer = bytearray()
        self._crc = 0
        self._packets = 0
        self._ended = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def checksum(self) -> str:
        return str(self._crc)

    def _do_send(self, data: bytes, attributes: Dict[str, str]) -> None:
        packet = encode_packet(data, attributes)
        self._buffer += packet
        self._crc = zlib.crc32(packet, self._crc)
        self._packets += 1

    def _do_confirm(self) -> None:
        body = bytes(self._buffer)
        headers = {
            "Content-Type": "application/octet-stream",
            "x-nifi-site-to-site-use-compression": "true" if self._compress else "false",
        }
        if self._compress:
            body = gzip.compress(body)
            headers["Content-Encoding"] = "gzip"

        resp = self._request("POST", f"{self._url}/flow-files", content=body, headers=headers)
        if resp.status_code != 202:
            raise TransportError(f"Remote rejected flow files: HTTP {resp.status_code} {resp.text}")

        remote = resp.text.strip()
        if remote != self.checksum:
            self._end(BAD_CHECKSUM)
            raise TransportError(
                f"Checksum mismatch for transaction {self.transaction_id}: "
                f"local={self.checksum} remote={remote}"
            )
        logger.debug(
            f"Transaction {self.transaction_id}: {self._packets} packet(s) confirmed, checksum={remote}"
        )

    def _do_complete(self) -> None:
        resp = self._end(CONFIRM_TRANSACTION, checksum=self.checksum)
        if resp.status_code != 200:
            raise TransportError(
                f"Remote refused to commit transaction {self.transaction_id}: "
                f"HTTP {resp.status_code} {resp.text}"
            )

    def _do_cancel(self, reason: str) -> None:
        if self._ended:
            logger.debug(f"Transaction {self.transaction_id} already ended; not cancelling ({reason})")
            return
        try:
            self._end(CANCEL_TRANSACTION)
        except TransportError as e:
            logger.warning(f"Failed to cancel transaction {self.transaction_id} ({reason}): {e}")

    def _end(self, code: int, checksum: Optional[str] = None) -> httpx.Response:
        params: Dict[str, Union[str, int]] = {"responseCode": code}
        if checksum is not None:
            params["checksum"] = checksum
        resp = self._request("DELETE", self._url, params=params)
        # at most one DELETE per transaction
        self._ended = True
        return resp

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}") from e


class HttpSiteToSiteClient:
    """Reusable session with a named input port on a remote instance.

    Args:
        url: API root of the remote instance, e.g. ``https://host:8443/nifi-api``
        port_name: name of the input port receiving the batches
        timeout: seconds to wait on any single request
        ssl_context: TLS configuration; system defaults when None
        compress: gzip request bodies
        transport: optional httpx transport (used by tests)
    """

    def __init__(
        self,
        url: str,
        port_name: str,
        *,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
        compress: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api = url.rstrip("/")
        self._port_name = port_name
        self._compress = compress
        self._port_id: Optional[str] = None
        self._client: Optional[httpx.Client] = httpx.Client(
            headers=_HEADERS,
            timeout=httpx.Timeout(timeout),
            verify=ssl_context if ssl_context is not None else True,
            transport=transport,
        )
        logger.debug(f"Site-to-site client for port {port_name!r} at {self._api}")

    def __enter__(self) -> "HttpSiteToSiteClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._client is None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # --------------------------- public API

    def create_transaction(self, direction: Direction = "send") -> Optional[HttpTransaction]:
        if direction != "send":
            raise ValueError(f"Unsupported transfer direction: {direction}")
        client = self._require_client()

        try:
            port_id = self._resolve_port(client)
            resp = self._call(
                client, "POST", f"{self._api}/data-transfer/input-ports/{port_id}/transactions"
            )
            if resp.status_code != 201:
                raise map_http_error(resp.status_code, resp.text)
        except BackpressureSignal as e:
            logger.debug(f"Remote port {self._port_name!r} is penalized ({e}); will try later")
            return None

        location = resp.headers.get("Location")
        if not location:
            raise TransportError("Transaction created without a Location header")
        tx_url = str(resp.url.join(location))
        logger.debug(f"Created transaction {tx_url}")
        return HttpTransaction(client, tx_url, compress=self._compress)

    # --------------------------- internals

    def _require_client(self) -> httpx.Client:
        if self._client is None:
            raise TransportError("Site-to-site client is closed")
        return self._client

    def _resolve_port(self, client: httpx.Client) -> str:
        if self._port_id is not None:
            return self._port_id

        resp = self._call(client, "GET", f"{self._api}/site-to-site")
        if resp.status_code != 200:
            raise map_http_error(resp.status_code, resp.text)
        try:
            ports = resp.json()["controller"]["inputPorts"]
            port_id = next(
                (str(p["id"]) for p in ports or [] if p.get("name") == self._port_name), None
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransportError(
                f"Unexpected site-to-site details response: {type(e).__name__}: {e}"
            ) from e

        if port_id is None:
            raise TransportError(f"No input port named {self._port_name!r} on {self._api}")
        self._port_id = port_id
        logger.info(f"Resolved input port {self._port_name!r} -> {port_id}")
        return port_id

    @staticmethod
    def _call(client: httpx.Client, method: str, url: str) -> httpx.Response:
        try:
            return client.request(method, url)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}") from e
