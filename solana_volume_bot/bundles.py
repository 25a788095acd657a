"""
Bundle and Transaction Helpers

Builds the funding transaction (compute budget + funding instruction),
rewrites aggregator transactions onto a fresh blockhash, and encodes
signed transactions for the relay.

Funding instruction payload layout (9 bytes):
    [0]     command tag (FUND_MANY_COMMAND for 4 recipients, FUND_ONE_COMMAND for 1)
    [1..9]  relay tip in lamports, u64 little-endian
"""

import struct
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

import base58
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import VersionedTransaction

from .constants import (
    AMM_PROGRAM_ID,
    COMPUTE_UNIT_LIMIT,
    COMPUTE_UNIT_PRICE,
    FEE_ACCOUNT_1,
    FEE_ACCOUNT_2,
    FUND_MANY_COMMAND,
    FUND_ONE_COMMAND,
    MAKERS_PER_BUNDLE,
)
from .utils import InvalidBlockhashError, InvalidBundleError, SwapBuildFailedError

FUND_DATA_FORMAT = "<BQ"
FUND_DATA_SIZE = struct.calcsize(FUND_DATA_FORMAT)
MAX_TIP_LAMPORTS = 2 ** 64 - 1

RECIPIENT_COMMANDS = {
    MAKERS_PER_BUNDLE: FUND_MANY_COMMAND,
    1: FUND_ONE_COMMAND,
}


def get_compute_budget_instructions() -> List[Instruction]:
    """Fixed unit price and unit limit, independent of network congestion."""
    return [
        set_compute_unit_price(COMPUTE_UNIT_PRICE),
        set_compute_unit_limit(COMPUTE_UNIT_LIMIT),
    ]


def encode_fund_data(command: int, tip_lamports: int) -> bytes:
    """Encode the funding instruction payload."""
    if command not in RECIPIENT_COMMANDS.values():
        raise ValueError(f"Unknown funding command: {command}")
    if not 0 <= tip_lamports <= MAX_TIP_LAMPORTS:
        raise ValueError(f"Tip out of u64 range: {tip_lamports}")
    return struct.pack(FUND_DATA_FORMAT, command, tip_lamports)


def decode_fund_data(data: bytes) -> Tuple[int, int]:
    """Decode a funding payload into (command, tip_lamports)."""
    if len(data) != FUND_DATA_SIZE:
        raise ValueError(f"Funding payload must be {FUND_DATA_SIZE} bytes, got {len(data)}")
    return struct.unpack(FUND_DATA_FORMAT, data)


def to_hash(blockhash: Union[Hash, str, None]) -> Hash:
    """Validate and normalize a recent blockhash."""
    if blockhash is None or blockhash == "":
        raise InvalidBlockhashError("Missing recent blockhash")
    if isinstance(blockhash, Hash):
        value = blockhash
    elif isinstance(blockhash, str):
        try:
            value = Hash.from_string(blockhash)
        except Exception as e:
            raise InvalidBlockhashError(f"Invalid recent blockhash: {blockhash!r}") from e
    else:
        raise InvalidBlockhashError(f"Invalid recent blockhash type: {type(blockhash).__name__}")
    if value == Hash.default():
        raise InvalidBlockhashError("Recent blockhash is the default (zero) hash")
    return value


@dataclass(frozen=True)
class FundingInstruction:
    """Funds 1 or 4 ephemeral accounts and pays the relay tip."""
    payer: Pubkey
    recipients: Tuple[Pubkey, ...]
    tip_account: Pubkey
    tip_lamports: int
    fee_accounts: Tuple[Pubkey, Pubkey] = (FEE_ACCOUNT_1, FEE_ACCOUNT_2)

    def __post_init__(self):
        if len(self.recipients) not in RECIPIENT_COMMANDS:
            raise ValueError(
                f"Funding supports 1 or {MAKERS_PER_BUNDLE} recipients, got {len(self.recipients)}"
            )

    @property
    def command(self) -> int:
        return RECIPIENT_COMMANDS[len(self.recipients)]

    @property
    def data(self) -> bytes:
        return encode_fund_data(self.command, self.tip_lamports)

    def account_metas(self) -> List[AccountMeta]:
        metas = [AccountMeta(self.payer, is_signer=True, is_writable=True)]
        metas += [AccountMeta(r, is_signer=False, is_writable=True) for r in self.recipients]
        metas.append(AccountMeta(self.tip_account, is_signer=False, is_writable=True))
        metas += [AccountMeta(f, is_signer=False, is_writable=True) for f in self.fee_accounts]
        metas.append(AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False))
        return metas

    def to_instruction(self) -> Instruction:
        return Instruction(AMM_PROGRAM_ID, self.data, self.account_metas())


def create_vtx_with_only_main_signer(
    instructions: Sequence[Instruction],
    payer: Keypair,
    blockhash: Union[Hash, str, None],
) -> VersionedTransaction:
    """Compile a v0 transaction without lookup tables, signed by the payer only."""
    recent = to_hash(blockhash)
    msg = MessageV0.try_compile(payer.pubkey(), list(instructions), [], recent)
    return VersionedTransaction(msg, [payer])


def build_funding_tx(
    payer: Keypair,
    recipients: Sequence[Pubkey],
    tip_lamports: int,
    blockhash: Union[Hash, str, None],
    tip_account: Pubkey,
) -> VersionedTransaction:
    """
    Build the signed funding transaction.

    Args:
        payer: Funding keypair, the only signer
        recipients: 1 or 4 ephemeral accounts to fund
        tip_lamports: Relay tip
        blockhash: Recent blockhash shared by the whole bundle
        tip_account: Relay tip account

    Returns:
        Signed VersionedTransaction
    """
    fund_ix = FundingInstruction(
        payer=payer.pubkey(),
        recipients=tuple(recipients),
        tip_account=tip_account,
        tip_lamports=tip_lamports,
    )
    return create_vtx_with_only_main_signer(
        [*get_compute_budget_instructions(), fund_ix.to_instruction()],
        payer,
        blockhash,
    )


def rewrite_and_sign(
    tx: VersionedTransaction,
    blockhash: Union[Hash, str, None],
    signer: Keypair,
) -> VersionedTransaction:
    """Move an aggregator-built transaction onto our blockhash and sign it."""
    recent = to_hash(blockhash)
    msg = tx.message
    if isinstance(msg, MessageV0):
        new_msg = MessageV0(
            msg.header,
            msg.account_keys,
            recent,
            msg.instructions,
            msg.address_table_lookups,
        )
    else:
        header = msg.header
        new_msg = Message.new_with_compiled_instructions(
            header.num_required_signatures,
            header.num_readonly_signed_accounts,
            header.num_readonly_unsigned_accounts,
            msg.account_keys,
            recent,
            msg.instructions,
        )
    try:
        return VersionedTransaction(new_msg, [signer])
    except Exception as e:
        raise SwapBuildFailedError(
            f"Swap transaction cannot be signed by {signer.pubkey()}: {e}"
        ) from e


def encode_transaction(tx: VersionedTransaction) -> str:
    """Serialize and base58-encode a signed transaction."""
    return base58.b58encode(bytes(tx)).decode("ascii")


def fee_payer(tx: VersionedTransaction) -> Pubkey:
    return tx.message.account_keys[0]


@dataclass
class Bundle:
    """Funding transaction followed by the swap transactions it funds."""
    funding_tx: VersionedTransaction
    swap_txs: List[VersionedTransaction]
    recipients: List[Pubkey] = field(default_factory=list)

    @property
    def transactions(self) -> List[VersionedTransaction]:
        return [self.funding_tx, *self.swap_txs]

    def validate(self) -> "Bundle":
        """Check shared blockhash and funded-account / signer consistency."""
        if not self.swap_txs:
            raise InvalidBundleError("Bundle has no swap transactions")

        blockhashes = {tx.message.recent_blockhash for tx in self.transactions}
        if len(blockhashes) != 1:
            raise InvalidBundleError(
                f"Bundle transactions reference {len(blockhashes)} different blockhashes"
            )

        payers = [fee_payer(tx) for tx in self.swap_txs]
        if self.recipients and payers != list(self.recipients):
            raise InvalidBundleError("Funded accounts do not match swap signers")
        return self

    def encoded(self) -> List[str]:
        return [encode_transaction(tx) for tx in self.transactions]

    def __len__(self) -> int:
        return 1 + len(self.swap_txs)
