"""Shared fixtures: a scripted chain client and a local relay server"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from eth_account import Account
from hexbytes import HexBytes

from flashbundle.utils.blockchain import BlockInfo

# Well-known throwaway keys; never fund these
IDENTITY_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_KEY = "0x8b3a350cf5c34c9194ca85829a2df0ec3153be0318b5e2d3348e872092edffba"


class FakeChain:
    """In-memory ChainClient; the head advances one block per wait_for_block call"""

    def __init__(self, head: int = 100):
        self.head = head
        self.blocks: Dict[int, BlockInfo] = {}
        self.block_failures = 0
        self.head_failures = 0
        self.block_queries: List[int] = []
        self.forwarded: List[Tuple[str, Any]] = []
        self.network_name = "fakenet"

    def add_block(self, number: int, tx_hashes, block_hash: Optional[bytes] = None) -> BlockInfo:
        block = BlockInfo(
            number=number,
            hash=HexBytes(block_hash or number.to_bytes(32, "big")),
            transactions=tuple(HexBytes(tx) for tx in tx_hashes),
        )
        self.blocks[number] = block
        return block

    async def get_block_number(self) -> int:
        return self.head

    async def get_block(self, block_number: int) -> Optional[BlockInfo]:
        self.block_queries.append(block_number)
        if self.block_failures > 0:
            self.block_failures -= 1
            raise ConnectionError("rpc unavailable")
        return self.blocks.get(block_number)

    async def wait_for_block(self, after: int) -> int:
        await asyncio.sleep(0)
        if self.head_failures > 0:
            self.head_failures -= 1
            raise ConnectionError("rpc unavailable")
        if self.head <= after:
            self.head = after + 1
        return self.head

    async def make_request(self, method: str, params: Any) -> Any:
        self.forwarded.append((method, params))
        return {"jsonrpc": "2.0", "id": 1, "result": f"forwarded:{method}"}


class RelayStub:
    """Records requests and answers with queued responses"""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self._responses: List[Tuple[int, str]] = []
        self.delay = 0.0
        self.url = ""

    def reply(self, result: Any) -> "RelayStub":
        return self.reply_raw(200, json.dumps({"jsonrpc": "2.0", "id": 1, "result": result}))

    def reply_error(self, code: int, message: str, status: int = 200) -> "RelayStub":
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}}
        return self.reply_raw(status, json.dumps(body))

    def reply_raw(self, status: int, text: str) -> "RelayStub":
        self._responses.append((status, text))
        return self

    @property
    def last(self) -> Dict[str, Any]:
        return self.requests[-1]

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.text()
        self.requests.append({
            "headers": request.headers.copy(),
            "body": body,
            "json": json.loads(body),
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        status, text = self._responses.pop(0) if self._responses else (
            200, json.dumps({"jsonrpc": "2.0", "id": 1, "result": None})
        )
        return web.Response(status=status, text=text)


async def _serve(stub: RelayStub) -> TestServer:
    app = web.Application()
    app.router.add_post("/", stub.handle)
    server = TestServer(app)
    await server.start_server()
    stub.url = str(server.make_url("/"))
    return server


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def identity_key() -> str:
    return IDENTITY_KEY


@pytest.fixture
def identity_address() -> str:
    return Account.from_key(IDENTITY_KEY).address


@pytest_asyncio.fixture
async def relay_stub():
    stub = RelayStub()
    server = await _serve(stub)
    yield stub
    await server.close()


@pytest_asyncio.fixture
async def simulation_stub():
    stub = RelayStub()
    server = await _serve(stub)
    yield stub
    await server.close()
