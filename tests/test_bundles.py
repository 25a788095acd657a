"""
Tests for the funding instruction, transaction builders and bundle checks.
"""

import random

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer

from solana_volume_bot.bundles import (
    FUND_DATA_SIZE,
    Bundle,
    FundingInstruction,
    build_funding_tx,
    create_vtx_with_only_main_signer,
    decode_fund_data,
    encode_fund_data,
    encode_transaction,
    fee_payer,
    rewrite_and_sign,
    to_hash,
)
from solana_volume_bot.constants import (
    AMM_PROGRAM_ID,
    FEE_ACCOUNT_1,
    FEE_ACCOUNT_2,
    FUND_MANY_COMMAND,
    FUND_ONE_COMMAND,
    JITO_ACCOUNTS,
)
from solana_volume_bot.utils import InvalidBlockhashError, InvalidBundleError, SwapBuildFailedError


def swap_tx_for(signer: Keypair, blockhash: Hash):
    """Stand-in swap: a self-transfer signed by the ephemeral signer."""
    ix = transfer(TransferParams(from_pubkey=signer.pubkey(), to_pubkey=signer.pubkey(), lamports=1))
    return create_vtx_with_only_main_signer([ix], signer, blockhash)


class TestFundPayload:

    def test_layout(self):
        data = encode_fund_data(FUND_MANY_COMMAND, 100_000)
        assert len(data) == FUND_DATA_SIZE == 9
        assert data[0] == FUND_MANY_COMMAND
        assert int.from_bytes(data[1:], "little") == 100_000

    def test_decode(self):
        assert decode_fund_data(encode_fund_data(FUND_ONE_COMMAND, 2 ** 64 - 1)) == (FUND_ONE_COMMAND, 2 ** 64 - 1)

    @pytest.mark.parametrize("tip", [0, 1, 255, 256, 2 ** 16 - 1, 2 ** 16, 2 ** 32 - 1, 2 ** 32, 2 ** 56 - 1, 2 ** 56, 2 ** 63 - 1])
    @pytest.mark.parametrize("command", [FUND_MANY_COMMAND, FUND_ONE_COMMAND])
    def test_round_trip_boundaries(self, command, tip):
        data = encode_fund_data(command, tip)
        assert len(data) == FUND_DATA_SIZE
        assert decode_fund_data(data) == (command, tip)

    def test_round_trip_random_tips(self):
        rng = random.Random(7)
        for _ in range(2000):
            tip = rng.randrange(2 ** 63)
            command = rng.choice([FUND_MANY_COMMAND, FUND_ONE_COMMAND])
            assert decode_fund_data(encode_fund_data(command, tip)) == (command, tip)

    @pytest.mark.parametrize("command,tip", [(1, 0), (FUND_ONE_COMMAND, -1), (FUND_ONE_COMMAND, 2 ** 64)])
    def test_rejects_bad_values(self, command, tip):
        with pytest.raises(ValueError):
            encode_fund_data(command, tip)

    def test_decode_wrong_size(self):
        with pytest.raises(ValueError):
            decode_fund_data(b"\x00" * 8)


class TestFundingInstruction:

    def test_four_recipients(self):
        payer = Pubkey.new_unique()
        recipients = tuple(Pubkey.new_unique() for _ in range(4))
        ix = FundingInstruction(payer, recipients, JITO_ACCOUNTS[0], 100_000)

        assert ix.command == FUND_MANY_COMMAND
        metas = ix.account_metas()
        assert [m.pubkey for m in metas] == [
            payer, *recipients, JITO_ACCOUNTS[0], FEE_ACCOUNT_1, FEE_ACCOUNT_2, SYSTEM_PROGRAM_ID,
        ]
        assert metas[0].is_signer and metas[0].is_writable
        assert not any(m.is_signer for m in metas[1:])
        assert all(m.is_writable for m in metas[:-1])
        assert not metas[-1].is_writable

        instruction = ix.to_instruction()
        assert instruction.program_id == AMM_PROGRAM_ID
        assert bytes(instruction.data) == encode_fund_data(FUND_MANY_COMMAND, 100_000)

    def test_one_recipient(self):
        ix = FundingInstruction(Pubkey.new_unique(), (Pubkey.new_unique(),), JITO_ACCOUNTS[1], 1_000_000)
        assert ix.command == FUND_ONE_COMMAND
        assert len(ix.account_metas()) == 6

    @pytest.mark.parametrize("count", [0, 2, 3, 5])
    def test_rejects_other_recipient_counts(self, count):
        with pytest.raises(ValueError):
            FundingInstruction(
                Pubkey.new_unique(),
                tuple(Pubkey.new_unique() for _ in range(count)),
                JITO_ACCOUNTS[0],
                1,
            )


class TestBlockhash:

    @pytest.mark.parametrize("value", [None, "", "not a hash", 42, Hash.default()])
    def test_invalid(self, value):
        with pytest.raises(InvalidBlockhashError):
            to_hash(value)

    def test_string_accepted(self):
        blockhash = Hash.new_unique()
        assert to_hash(str(blockhash)) == blockhash

    def test_funding_tx_refuses_invalid_blockhash(self):
        with pytest.raises(InvalidBlockhashError):
            build_funding_tx(Keypair(), [Pubkey.new_unique()], 1, None, JITO_ACCOUNTS[0])


class TestTransactions:

    def test_funding_tx(self):
        payer = Keypair()
        recipients = [Keypair().pubkey() for _ in range(4)]
        blockhash = Hash.new_unique()

        tx = build_funding_tx(payer, recipients, 100_000, blockhash, JITO_ACCOUNTS[2])
        msg = tx.message

        assert msg.recent_blockhash == blockhash
        assert fee_payer(tx) == payer.pubkey()
        assert len(tx.signatures) == 1
        # compute unit price, compute unit limit, funding
        assert len(msg.instructions) == 3
        funding = msg.instructions[2]
        assert msg.account_keys[funding.program_id_index] == AMM_PROGRAM_ID
        assert bytes(funding.data) == encode_fund_data(FUND_MANY_COMMAND, 100_000)

    def test_rewrite_and_sign(self):
        signer = Keypair()
        original = swap_tx_for(signer, Hash.new_unique())
        target = Hash.new_unique()

        rewritten = rewrite_and_sign(original, target, signer)
        assert rewritten.message.recent_blockhash == target
        assert rewritten.message.account_keys == original.message.account_keys
        assert rewritten.signatures[0] != original.signatures[0]

    def test_rewrite_with_wrong_signer(self):
        original = swap_tx_for(Keypair(), Hash.new_unique())
        with pytest.raises(SwapBuildFailedError):
            rewrite_and_sign(original, Hash.new_unique(), Keypair())

    def test_encode_is_base58(self):
        import base58

        tx = swap_tx_for(Keypair(), Hash.new_unique())
        assert base58.b58decode(encode_transaction(tx)) == bytes(tx)


class TestBundle:

    def _bundle(self, count=4, swap_blockhash=None):
        payer = Keypair()
        signers = [Keypair() for _ in range(count)]
        blockhash = Hash.new_unique()
        recipients = [s.pubkey() for s in signers]
        fund = build_funding_tx(payer, recipients, 100_000, blockhash, JITO_ACCOUNTS[0])
        swaps = [swap_tx_for(s, swap_blockhash or blockhash) for s in signers]
        return Bundle(fund, swaps, recipients)

    def test_valid(self):
        bundle = self._bundle()
        assert bundle.validate() is bundle
        assert len(bundle) == 5
        assert len(bundle.encoded()) == 5

    def test_mixed_blockhash(self):
        with pytest.raises(InvalidBundleError):
            self._bundle(swap_blockhash=Hash.new_unique()).validate()

    def test_signers_must_match_recipients(self):
        bundle = self._bundle(count=1)
        bundle.recipients = [Pubkey.new_unique()]
        with pytest.raises(InvalidBundleError):
            bundle.validate()

    def test_empty(self):
        bundle = self._bundle(count=1)
        bundle.swap_txs = []
        with pytest.raises(InvalidBundleError):
            bundle.validate()
