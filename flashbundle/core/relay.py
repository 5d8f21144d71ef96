"""
Relay transport

Sends signed JSON-RPC requests to a relay over HTTP and turns whatever comes
back into either a result payload or one of the relay error types:
- connection problems, timeouts and bare HTTP errors -> RelayTransportError
- a JSON-RPC error object -> RelayProtocolError (code and message kept)
- anything that is not a JSON-RPC envelope -> NonConformantResponseError (raw text kept)

There is no retry here; each call is a single attempt.
"""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .errors import (
    NonConformantResponseError,
    RelayProtocolError,
    RelayTransportError,
)
from .signing import RelaySigner
from ..utils.helpers import Timer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayRequest:
    """One JSON-RPC request envelope"""
    id: int
    method: str
    params: Any

    def to_body(self) -> str:
        """The exact serialized body; this string is both signed and sent"""
        return json.dumps({
            "jsonrpc": "2.0",
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }, separators=(",", ":"))


class RelayClient:
    """
    JSON-RPC client for a single relay endpoint

    Every request is signed with the searcher identity. An aiohttp session may
    be shared in; otherwise a short-lived session is opened per request.
    """

    def __init__(self,
                 url: str,
                 signer: RelaySigner,
                 timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize relay client

        Args:
            url: Relay endpoint URL
            signer: Signs each request body
            timeout: Total request timeout in seconds
            session: Optional caller-owned aiohttp session
        """
        self.url = url
        self.signer = signer
        self.timeout = timeout
        self._session = session
        self._ids = itertools.count(1)

    def __repr__(self) -> str:
        return f"RelayClient(url={self.url!r})"

    def build_request(self, method: str, params: Any) -> RelayRequest:
        return RelayRequest(id=next(self._ids), method=method, params=params)

    async def request(self, method: str, params: Any) -> Any:
        """
        Send a request and return its JSON-RPC result

        Args:
            method: JSON-RPC method name
            params: JSON-serializable parameters

        Returns:
            The `result` member of the response (may be None)

        Raises:
            RelayTransportError, RelayProtocolError, NonConformantResponseError
        """
        relay_request = self.build_request(method, params)
        body = relay_request.to_body()
        headers = self.signer.headers(body)

        with Timer(f"{method} -> {self.url}", logger):
            status, text = await self._post(body, headers)

        return parse_response(status, text)

    async def _post(self, body: str, headers: Dict[str, str]):
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            if self._session is not None:
                async with self._session.post(self.url, data=body, headers=headers,
                                              timeout=timeout) as response:
                    return response.status, await response.text()

            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, data=body, headers=headers) as response:
                    return response.status, await response.text()

        except asyncio.TimeoutError as e:
            raise RelayTransportError(f"Relay request timed out after {self.timeout}s: {self.url}") from e
        except aiohttp.ClientError as e:
            raise RelayTransportError(f"Relay request failed: {e}") from e


def parse_response(status: int, text: str) -> Any:
    """
    Interpret a relay HTTP response

    Args:
        status: HTTP status code
        text: Response body

    Returns:
        JSON-RPC result payload
    """
    ok = 200 <= status < 300

    if not text.strip():
        if ok:
            raise NonConformantResponseError(text, status, "empty body")
        raise RelayTransportError(f"Relay returned HTTP {status} with an empty body", status)

    try:
        payload = json.loads(text)
    except ValueError:
        raise NonConformantResponseError(text, status, "not JSON") from None

    if not isinstance(payload, dict):
        raise NonConformantResponseError(text, status, "not a JSON-RPC object")

    if "error" in payload and payload["error"] is not None:
        error = payload["error"]
        if isinstance(error, dict):
            raise RelayProtocolError(error.get("code"), str(error.get("message", "")), error.get("data"))
        # some relays put a bare string here
        raise RelayProtocolError(None, str(error))

    if "result" not in payload:
        raise NonConformantResponseError(text, status, "missing result")

    if not ok:
        raise RelayTransportError(f"Relay returned HTTP {status}", status)

    return payload["result"]
