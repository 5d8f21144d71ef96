"""Web3-backed chain client"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from hexbytes import HexBytes
from web3.exceptions import BlockNotFound

from flashbundle.utils.blockchain import BlockInfo, ChainClient, Web3ChainClient


class ScriptedEth:
    """Stands in for AsyncWeb3.eth; block_number yields the scripted heads in turn"""

    def __init__(self, heads):
        self.heads = list(heads)
        self.head_queries = 0
        self.get_block = AsyncMock()

    @property
    def block_number(self):
        self.head_queries += 1
        head = self.heads.pop(0) if len(self.heads) > 1 else self.heads[0]

        async def answer():
            return head
        return answer()


def _client(heads=(100,), **kwargs):
    w3 = SimpleNamespace(
        eth=ScriptedEth(heads),
        provider=SimpleNamespace(make_request=AsyncMock(return_value={"result": "0x1"})),
    )
    kwargs.setdefault("poll_interval", 0)
    return Web3ChainClient(w3, **kwargs)


def test_satisfies_chain_client_protocol():
    assert isinstance(_client(), ChainClient)


@pytest.mark.asyncio
async def test_get_block_returns_transaction_hashes():
    client = _client()
    client.w3.eth.get_block.return_value = {
        "number": 101,
        "hash": b"\x42" * 32,
        "transactions": [b"\xaa" * 32, b"\xbb" * 32],
        "timestamp": 1700000000,
    }

    block = await client.get_block(101)

    assert isinstance(block, BlockInfo)
    assert block.number == 101
    assert block.hash == HexBytes(b"\x42" * 32)
    assert block.timestamp == 1700000000
    assert block.contains_all([b"\xbb" * 32, "0x" + "aa" * 32])
    assert not block.contains_all([b"\xcc" * 32])
    client.w3.eth.get_block.assert_awaited_once_with(101, full_transactions=False)


@pytest.mark.asyncio
async def test_unknown_block_is_none():
    client = _client()
    client.w3.eth.get_block.side_effect = BlockNotFound("Block with id: '0x65' not found.")
    assert await client.get_block(101) is None


@pytest.mark.asyncio
async def test_pending_block_is_none():
    client = _client()
    client.w3.eth.get_block.return_value = {"number": None, "hash": None, "transactions": []}
    assert await client.get_block(101) is None


@pytest.mark.asyncio
async def test_rpc_errors_propagate():
    client = _client()
    client.w3.eth.get_block.side_effect = ConnectionError("rpc unavailable")
    with pytest.raises(ConnectionError):
        await client.get_block(101)


@pytest.mark.asyncio
async def test_get_block_number_tracks_latest():
    client = _client(heads=[100, 99])
    assert client.latest_block == -1

    assert await client.get_block_number() == 100
    # a lagging node does not move the recorded head backwards
    assert await client.get_block_number() == 99
    assert client.latest_block == 100


@pytest.mark.asyncio
async def test_wait_for_block_polls_until_head_moves():
    client = _client(heads=[100, 100, 101])

    assert await client.wait_for_block(100) == 101
    assert client.w3.eth.head_queries == 3


@pytest.mark.asyncio
async def test_wait_for_block_returns_known_head_without_polling():
    client = _client(heads=[105])
    await client.get_block_number()

    assert await client.wait_for_block(100) == 105
    assert client.w3.eth.head_queries == 1


@pytest.mark.asyncio
async def test_concurrent_waiters_share_one_poll():
    client = _client(heads=[100, 101])

    first, second = await asyncio.gather(client.wait_for_block(100), client.wait_for_block(100))

    assert first == second == 101
    assert client.w3.eth.head_queries == 2


@pytest.mark.asyncio
async def test_make_request_goes_to_provider():
    client = _client()

    response = await client.make_request("eth_chainId", [])

    assert response == {"result": "0x1"}
    client.w3.provider.make_request.assert_awaited_once_with("eth_chainId", [])
