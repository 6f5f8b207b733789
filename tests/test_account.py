"""
Unit tests for the web3-backed gas tank account, using a stub chain client.
"""
import dataclasses
from types import SimpleNamespace

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from sponsorship_broker.core import ConfigurationError, UpstreamError, ValidationFailed
from sponsorship_broker.services import Web3GasTankAccount, create_gas_tank_account
from sponsorship_broker.services.account import ACCOUNT_FACTORY_ABI, ENTRY_POINT_ABI

from conftest import OWNER_ADDRESS, OWNER_PRIVATE_KEY, TANK_ADDRESS, TOKEN_ADDRESS, make_tank_config

FACTORY_ADDRESS = "0x" + "5e" * 20
ENTRY_POINT_ADDRESS = "0x" + "6f" * 20
QUOTE_HASH = "0x" + "cd" * 32


class StubFunctions:

    def __getattr__(self, name):
        return lambda *args: (name, args)


class StubChainClient:

    def __init__(self, code=b"", nonce=0, tank_balance=7_500_000, failing=(), created_elsewhere=False):
        self.code = code
        self.nonce = nonce
        self.tank_balance = tank_balance
        self.failing = failing
        self.created_elsewhere = created_elsewhere
        self.reads = []
        self.sent = []

    async def read_contract(self, address, abi, function_name, args=()):
        self.reads.append((address, function_name, tuple(args)))
        if function_name == "computeAccountAddress":
            assert abi is ACCOUNT_FACTORY_ABI
            return TANK_ADDRESS
        if function_name == "getNonce":
            assert abi is ENTRY_POINT_ABI
            return self.nonce
        if function_name == "balanceOf":
            return self.tank_balance
        if function_name == "decimals":
            return 6
        raise AssertionError(function_name)

    async def get_code(self, address):
        return self.code

    def contract(self, address, abi):
        return SimpleNamespace(address=address, functions=StubFunctions())

    async def transact(self, owner, call):
        name, args = call
        if name in self.failing:
            if name == "createAccount" and self.created_elsewhere:
                self.code = b"\x60\x80"
            raise UpstreamError(f"Transaction for {name} reverted")
        self.sent.append(call)
        if name == "createAccount":
            self.code = b"\x60\x80"
        return "0x" + f"{len(self.sent):02x}" * 32


def make_account(client):
    return Web3GasTankAccount(
        client,
        Account.from_key(OWNER_PRIVATE_KEY),
        factory_address=FACTORY_ADDRESS,
        entry_point_address=ENTRY_POINT_ADDRESS,
    )


class TestAddress:

    @pytest.mark.asyncio
    async def test_address_from_factory_is_cached(self):
        client = StubChainClient()
        account = make_account(client)

        first = await account.get_address()
        second = await account.get_address()

        assert first.lower() == TANK_ADDRESS
        assert first == second
        assert client.reads == [(FACTORY_ADDRESS, "computeAccountAddress", (OWNER_ADDRESS, 0))]

    @pytest.mark.asyncio
    async def test_deployed_when_code_present(self):
        assert await make_account(StubChainClient(code=b"\x60\x80")).is_deployed()
        assert not await make_account(StubChainClient()).is_deployed()


class TestDeploy:

    @pytest.mark.asyncio
    async def test_creates_and_funds(self):
        client = StubChainClient(tank_balance=0)

        result = await make_account(client).deploy(TOKEN_ADDRESS, 5_000_000)

        assert [name for name, _ in client.sent] == ["createAccount", "transfer"]
        assert client.sent[0][1] == (OWNER_ADDRESS, 0)
        recipient, amount = client.sent[1][1]
        assert (recipient.lower(), amount) == (TANK_ADDRESS, 5_000_000)
        assert result.hash == "0x" + "01" * 32

    @pytest.mark.asyncio
    async def test_deployed_and_funded_sends_nothing(self):
        client = StubChainClient(code=b"\x60\x80")

        result = await make_account(client).deploy(TOKEN_ADDRESS, 1)

        assert result.hash is None
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_missing_deposit_is_sent_on_next_run(self):
        client = StubChainClient(tank_balance=0, failing=("transfer",))
        account = make_account(client)

        with pytest.raises(UpstreamError):
            await account.deploy(TOKEN_ADDRESS, 5_000_000)
        assert await account.is_deployed()

        client.failing = ()
        result = await account.deploy(TOKEN_ADDRESS, 5_000_000)

        assert result.hash is None
        assert [name for name, _ in client.sent] == ["createAccount", "transfer"]

    @pytest.mark.asyncio
    async def test_concurrent_creation_returns_no_hash(self):
        client = StubChainClient(tank_balance=0, failing=("createAccount",), created_elsewhere=True)

        result = await make_account(client).deploy(TOKEN_ADDRESS, 5_000_000)

        assert result.hash is None
        assert [name for name, _ in client.sent] == ["transfer"]

    @pytest.mark.asyncio
    async def test_creation_revert_is_raised(self):
        client = StubChainClient(failing=("createAccount",))

        with pytest.raises(UpstreamError, match="reverted"):
            await make_account(client).deploy(TOKEN_ADDRESS, 5_000_000)
        assert client.sent == []


class TestReads:

    @pytest.mark.asyncio
    async def test_balance(self):
        balance = await make_account(StubChainClient()).get_balance(TOKEN_ADDRESS)
        assert (balance.balance, balance.decimals) == (7_500_000, 6)

    @pytest.mark.asyncio
    async def test_nonce_key_from_upper_bits(self):
        nonce = (5 << 64) | 12
        result = await make_account(StubChainClient(nonce=nonce)).get_nonce()

        assert result.nonce == nonce
        assert result.nonce_key == 5


class TestSignSponsorship:

    @pytest.mark.asyncio
    async def test_signature_recovers_owner(self):
        account = make_account(StubChainClient())
        quote = {"hash": QUOTE_HASH, "paymentInfo": {"token": TOKEN_ADDRESS}, "userOps": []}

        signed = await account.sign_sponsorship(quote)

        signature = signed["paymentInfo"]["sponsorshipSignature"]
        recovered = Account.recover_message(encode_defunct(hexstr=QUOTE_HASH), signature=signature)
        assert recovered == OWNER_ADDRESS
        assert signed["paymentInfo"]["sponsor"].lower() == TANK_ADDRESS
        assert signed["userOps"] == []
        assert "sponsorshipSignature" not in quote["paymentInfo"]

    @pytest.mark.asyncio
    async def test_missing_hash_rejected(self):
        with pytest.raises(ValidationFailed):
            await make_account(StubChainClient()).sign_sponsorship({"paymentInfo": {"token": TOKEN_ADDRESS}})


class TestCreateAccount:

    @pytest.mark.asyncio
    async def test_requires_factory_address(self, config):
        config = dataclasses.replace(config, account_factory_address="")
        with pytest.raises(ConfigurationError, match="ACCOUNT_FACTORY_ADDRESS"):
            await create_gas_tank_account(make_tank_config(), config)

    @pytest.mark.asyncio
    async def test_rejects_bad_private_key(self, config):
        tank_config = dataclasses.replace(make_tank_config(), private_key="0x1234")
        with pytest.raises(ConfigurationError, match="Invalid private key"):
            await create_gas_tank_account(tank_config, config)
