"""Shared fixtures: an in-memory chain standing in for Web3.

``FakeChain`` decodes calls with the package's own ABI schemas and
simulates the entry point, account factory, paymaster, the two tokens and
the aid-flow manager closely enough to run both flows end to end.
Transactions enter through ``send`` (patched over ``AdminTransactor._send``)
and receipts come back from ``wait_for_transaction_receipt``.
"""

import copy
from types import SimpleNamespace

import pytest
from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted

from aidflow import AidFlowClient, DeploymentAddresses
from aidflow.config import NETWORK_PROFILES
from aidflow.contracts import AccountFactory, AidFlowManager, EntryPoint, Paymaster, SmartAccount, Token
from aidflow.models import UserOperation
from aidflow.signer import user_op_hash

# Keys for tests (DO NOT USE IN PRODUCTION)
ADMIN_KEY = "0x" + "11" * 32
OWNER_KEYS = {
    "donor": "0x" + "22" * 32,
    "field_office": "0x" + "33" * 32,
    "beneficiary": "0x" + "44" * 32,
    "field_manager": "0x" + "55" * 32,
}

CHAIN_ID = 84532
ETHER = 10**18
OP_GAS_USED = 120_000
TX_GAS_USED = 150_000
GAS_PRICE = 10**8


def _addr(byte: str) -> str:
    return to_checksum_address("0x" + byte * 20)


DEPLOYMENTS = DeploymentAddresses(
    entry_point=_addr("e1"),
    account_factory=_addr("fa"),
    paymaster=_addr("aa"),
    source_token=_addr("a1"),
    destination_token=_addr("b2"),
    aid_flow_manager=_addr("c3"),
)


def counterfactual_address(owner: str, salt: int) -> str:
    return to_checksum_address(keccak(encode(["address", "uint256"], [owner, salt]))[12:])


def error_payload(reason: str) -> bytes:
    return bytes.fromhex("08c379a0") + encode(["string"], [reason])


class Revert(Exception):
    pass


def _word(abi_type, value) -> bytes:
    return encode([abi_type], [value])


class FakeChain:
    """Minimal contract-level chain simulation."""

    def __init__(self, chain_id=CHAIN_ID, deployments=DEPLOYMENTS):
        self.chain_id = chain_id
        self.d = deployments
        self.admin = Account.from_key(ADMIN_KEY).address
        self.eth_balances = {self.admin: 10 * ETHER}
        self.code = {}
        self.owners = {}
        self.nonces = {}
        self.deposits = {}
        self.sponsored = set()
        self.field_offices = set()
        self.beneficiaries = set()
        self.tokens = {
            deployments.source_token: {"balances": {}, "allowances": {}},
            deployments.destination_token: {"balances": {}, "allowances": {}},
        }
        self.receipts = {}
        self.sent = []
        self.handle_ops_calls = 0
        self.admin_nonce = 0
        # test switches
        self.hang = False
        self.drop_events = False
        self.nonce_override = None
        self.rpc_calls = []
        self.eth = SimpleNamespace(
            chain_id=chain_id,
            call=self.call,
            get_code=self.get_code,
            get_balance=lambda a: self.eth_balances.get(a, 0),
            get_transaction_count=self.get_transaction_count,
            estimate_gas=lambda tx: 100_000,
            wait_for_transaction_receipt=self.wait_for_transaction_receipt,
        )

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_code(self, address):
        return HexBytes(self.code.get(to_checksum_address(address), b""))

    def get_transaction_count(self, address, block="latest"):
        return self.admin_nonce

    def call(self, tx):
        to, data = to_checksum_address(tx["to"]), bytes(tx["data"])
        self.rpc_calls.append((to, data[:4]))
        if to == self.d.account_factory:
            owner, salt = AccountFactory.GET_ADDRESS.decode_input(data)
            return encode(["address"], [counterfactual_address(owner, salt)])
        if to == self.d.entry_point:
            selector = data[:4]
            if selector == EntryPoint.GET_NONCE.selector:
                sender, _key = EntryPoint.GET_NONCE.decode_input(data)
                if self.nonce_override is not None:
                    return _word("uint256", self.nonce_override)
                return _word("uint256", self.nonces.get(sender, 0))
            if selector == EntryPoint.BALANCE_OF.selector:
                (account,) = EntryPoint.BALANCE_OF.decode_input(data)
                return _word("uint256", self.deposits.get(account, 0))
            if selector == EntryPoint.GET_USER_OP_HASH.selector:
                (raw,) = EntryPoint.GET_USER_OP_HASH.decode_input(data)
                return _word("bytes32", user_op_hash(self._op(raw), self.d.entry_point, self.chain_id))
        if to in self.tokens:
            (account,) = Token.BALANCE_OF.decode_input(data)
            return _word("uint256", self.tokens[to]["balances"].get(account, 0))
        raise AssertionError(f"unexpected eth_call to {to}")

    def balance(self, token, account):
        return self.tokens[token]["balances"].get(account, 0)

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------
    def send(self, tx):
        self.sent.append(tx)
        self.admin_nonce += 1
        tx_hash = HexBytes(keccak(_word("uint256", len(self.sent))))
        if self.hang:
            return tx_hash
        to, data, value = to_checksum_address(tx["to"]), bytes(tx["data"]), tx.get("value", 0)
        snapshot = self._snapshot()
        logs = []
        try:
            logs = self._execute(to, data, value)
            status = 1
        except Revert:
            self._restore(snapshot)
            status = 0
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": status,
            "gasUsed": TX_GAS_USED,
            "effectiveGasPrice": GAS_PRICE,
            "logs": [] if self.drop_events else logs,
        }
        return tx_hash

    def wait_for_transaction_receipt(self, tx_hash, timeout=None, poll_latency=None):
        if tx_hash not in self.receipts:
            raise TimeExhausted(f"Transaction {tx_hash!r} is not in the chain after {timeout} seconds")
        return self.receipts[tx_hash]

    def _snapshot(self):
        return copy.deepcopy(
            (self.code, self.owners, self.nonces, self.deposits, self.sponsored,
             self.field_offices, self.beneficiaries, self.tokens)
        )

    def _restore(self, snapshot):
        (self.code, self.owners, self.nonces, self.deposits, self.sponsored,
         self.field_offices, self.beneficiaries, self.tokens) = snapshot

    def _execute(self, to, data, value):
        selector = data[:4]
        if to == self.d.entry_point and selector == EntryPoint.HANDLE_OPS.selector:
            return self._handle_ops(data)
        if to == self.d.entry_point and selector == EntryPoint.DEPOSIT_TO.selector:
            (account,) = EntryPoint.DEPOSIT_TO.decode_input(data)
            self.deposits[account] = self.deposits.get(account, 0) + value
            return []
        if to == self.d.paymaster and selector == Paymaster.SPONSOR_ACCOUNT.selector:
            (account,) = Paymaster.SPONSOR_ACCOUNT.decode_input(data)
            self.sponsored.add(account)
            return []
        if to == self.d.aid_flow_manager and selector == AidFlowManager.SET_FIELD_OFFICE.selector:
            account, enabled = AidFlowManager.SET_FIELD_OFFICE.decode_input(data)
            (self.field_offices.add if enabled else self.field_offices.discard)(account)
            return []
        if to == self.d.aid_flow_manager and selector == AidFlowManager.SET_BENEFICIARY.selector:
            account, enabled = AidFlowManager.SET_BENEFICIARY.decode_input(data)
            (self.beneficiaries.add if enabled else self.beneficiaries.discard)(account)
            return []
        if to in self.tokens and selector == Token.MINT.selector:
            account, amount = Token.MINT.decode_input(data)
            self._credit(to, account, amount)
            return []
        raise Revert("unsupported admin call")

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    @staticmethod
    def _op(raw):
        return UserOperation(
            sender=to_checksum_address(raw[0]),
            nonce=raw[1],
            init_code=bytes(raw[2]),
            call_data=bytes(raw[3]),
            call_gas_limit=raw[4],
            verification_gas_limit=raw[5],
            pre_verification_gas=raw[6],
            max_fee_per_gas=raw[7],
            max_priority_fee_per_gas=raw[8],
            paymaster_and_data=bytes(raw[9]),
            signature=bytes(raw[10]),
        )

    def _handle_ops(self, data):
        self.handle_ops_calls += 1
        raw_ops, _beneficiary = EntryPoint.HANDLE_OPS.decode_input(data)
        ops = [self._op(raw) for raw in raw_ops]
        for op in ops:
            self._validate(op)

        logs = []
        for op in ops:
            op_hash = user_op_hash(op, self.d.entry_point, self.chain_id)
            self.nonces[op.sender] = op.nonce + 1
            cost = OP_GAS_USED * op.max_fee_per_gas
            self.deposits[self.d.paymaster] -= cost

            target, _value, inner = SmartAccount.EXECUTE.decode_input(op.call_data)
            snapshot = copy.deepcopy(self.tokens)
            success = True
            try:
                self._inner_call(op.sender, to_checksum_address(target), inner)
            except Revert as e:
                self.tokens = snapshot
                success = False
                logs.append(self._log(
                    EntryPoint.USER_OPERATION_REVERT_REASON,
                    [op_hash, op.sender],
                    ["uint256", "bytes"],
                    [op.nonce, error_payload(str(e))],
                ))
            logs.append(self._log(
                EntryPoint.USER_OPERATION_EVENT,
                [op_hash, op.sender, self.d.paymaster],
                ["uint256", "bool", "uint256", "uint256"],
                [op.nonce, success, cost, OP_GAS_USED],
            ))
        return logs

    def _validate(self, op):
        if op.init_code:
            if op.sender in self.code:
                raise Revert("AA10 sender already constructed")
            factory = to_checksum_address(op.init_code[:20])
            owner, salt = AccountFactory.CREATE_ACCOUNT.decode_input(op.init_code[20:])
            if factory != self.d.account_factory or counterfactual_address(owner, salt) != op.sender:
                raise Revert("AA14 initCode must return sender")
            self.code[op.sender] = b"\x60\x80"
            self.owners[op.sender] = to_checksum_address(owner)
        elif op.sender not in self.code:
            raise Revert("AA20 account not deployed")
        if op.nonce != self.nonces.get(op.sender, 0):
            raise Revert("AA25 invalid account nonce")
        digest = user_op_hash(op, self.d.entry_point, self.chain_id)
        signer = Account.recover_message(encode_defunct(primitive=digest), signature=op.signature)
        if signer != self.owners[op.sender]:
            raise Revert("AA24 signature error")
        if to_checksum_address(op.paymaster_and_data[:20]) != self.d.paymaster:
            raise Revert("AA30 paymaster not deployed")
        if op.sender not in self.sponsored:
            raise Revert("AA33 reverted: account not sponsored")
        if self.deposits.get(self.d.paymaster, 0) < OP_GAS_USED * op.max_fee_per_gas:
            raise Revert("AA31 paymaster deposit too low")

    def _log(self, event, indexed, data_types, data_values):
        topics = [event.topic] + [
            _word(abi_type, value) for (_, abi_type), value in zip(event.indexed, indexed)
        ]
        return {"address": self.d.entry_point, "topics": topics, "data": encode(data_types, data_values)}

    # ------------------------------------------------------------------
    # tokens / manager
    # ------------------------------------------------------------------
    def _credit(self, token, account, amount):
        balances = self.tokens[token]["balances"]
        balances[account] = balances.get(account, 0) + amount

    def _move(self, token, src, dst, amount):
        balances = self.tokens[token]["balances"]
        if balances.get(src, 0) < amount:
            raise Revert("ERC20: transfer amount exceeds balance")
        balances[src] = balances.get(src, 0) - amount
        balances[dst] = balances.get(dst, 0) + amount

    def _spend_allowance(self, token, owner, spender, amount):
        allowances = self.tokens[token]["allowances"]
        allowed = allowances.get((owner, spender), 0)
        if allowed < amount:
            raise Revert("ERC20: insufficient allowance")
        allowances[(owner, spender)] = allowed - amount

    def _inner_call(self, caller, target, data):
        selector = data[:4]
        if target in self.tokens:
            if selector == Token.TRANSFER.selector:
                to, amount = Token.TRANSFER.decode_input(data)
                self._move(target, caller, to, amount)
            elif selector == Token.APPROVE.selector:
                spender, amount = Token.APPROVE.decode_input(data)
                self.tokens[target]["allowances"][(caller, spender)] = amount
            elif selector == Token.TRANSFER_FROM.selector:
                owner, to, amount = Token.TRANSFER_FROM.decode_input(data)
                self._spend_allowance(target, owner, caller, amount)
                self._move(target, owner, to, amount)
            else:
                raise Revert("unsupported token call")
        elif target == self.d.aid_flow_manager:
            manager, src, dst = self.d.aid_flow_manager, self.d.source_token, self.d.destination_token
            if selector == AidFlowManager.ASSIGN_TO_BENEFICIARY.selector:
                beneficiary, amount = AidFlowManager.ASSIGN_TO_BENEFICIARY.decode_input(data)
                if caller not in self.field_offices:
                    raise Revert("Not a field office")
                if beneficiary not in self.beneficiaries:
                    raise Revert("Not a beneficiary")
                self._spend_allowance(src, caller, manager, amount)
                self._move(src, caller, beneficiary, amount)
            elif selector == AidFlowManager.CASH_OUT.selector:
                (amount,) = AidFlowManager.CASH_OUT.decode_input(data)
                if caller not in self.beneficiaries:
                    raise Revert("Not a beneficiary")
                self._spend_allowance(src, caller, manager, amount)
                self._move(src, caller, manager, amount)
                self._credit(dst, caller, amount)
            else:
                raise Revert("unsupported manager call")
        else:
            raise Revert("call to unknown contract")


@pytest.fixture()
def chain():
    return FakeChain()


@pytest.fixture()
def profile():
    return NETWORK_PROFILES[CHAIN_ID]


@pytest.fixture()
def client(chain, monkeypatch):
    c = AidFlowClient(DEPLOYMENTS, ADMIN_KEY, web3=chain)
    # Route signed transactions into the fake chain instead of an RPC node
    monkeypatch.setattr(c.transactor, "_send", chain.send)
    return c


@pytest.fixture()
def owner_keys():
    return {role: Account.from_key(key) for role, key in OWNER_KEYS.items()}
