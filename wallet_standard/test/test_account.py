"""
Unit tests for WalletAccount operations.
"""
import asyncio

import httpx
import pytest

from wallet_standard import (
    AuthenticationFailed,
    Chain,
    Cipher,
    DecryptInput,
    EncryptInput,
    InvalidTransactionEncoding,
    MissingSignatures,
    SolanaRpcClient,
    SubmissionFailed,
    SubmissionTimeout,
    Transaction,
    UnknownSigner,
    UnsupportedChain,
    UnsupportedCipher,
    WalletAccount,
    verify_message,
)
from wallet_standard.chain import EMPTY_SIGNATURE

from conftest import FakeChainClient


def test_account_identity(alice):
    assert alice.chain == Chain.SOLANA_DEVNET
    assert len(alice.address) == 32
    assert alice.default_cipher == Cipher.X25519_XSALSA20_POLY1305
    assert alice.ciphers == frozenset(Cipher)

    data = alice.to_dict()
    assert data['chain'] == "solana:devnet"
    assert data['default_cipher'] == "x25519-xsalsa20-poly1305"
    assert "WalletAccount" in repr(alice)


def test_account_key_created_once(alice):
    assert alice.address == alice.address
    assert WalletAccount.generate(Chain.SOLANA_DEVNET).address != WalletAccount.generate(Chain.SOLANA_DEVNET).address


def test_invalid_configuration():
    with pytest.raises(UnsupportedChain):
        WalletAccount.generate("ethereum:mainnet")

    with pytest.raises(UnsupportedCipher):
        WalletAccount.generate(Chain.SOLANA_DEVNET, ciphers=["rot13"])

    with pytest.raises(UnsupportedCipher):
        WalletAccount.generate(
            Chain.SOLANA_DEVNET,
            ciphers=[Cipher.X25519_XSALSA20_POLY1305],
            default_cipher=Cipher.X25519_CHACHA20_POLY1305,
        )

    with pytest.raises(ValueError):
        WalletAccount.generate(Chain.SOLANA_DEVNET, ciphers=[])

    with pytest.raises(ValueError):
        WalletAccount.generate(Chain.SOLANA_DEVNET, submit_timeout=0)


def test_default_cipher_falls_back_when_box_unsupported():
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, ciphers=[Cipher.X25519_CHACHA20_POLY1305])
    assert account.default_cipher == Cipher.X25519_CHACHA20_POLY1305


# ============================================
# sign_message
# ============================================

@pytest.mark.asyncio
async def test_sign_message_scenario():
    account = WalletAccount.generate(Chain.SOLANA_MAINNET)

    output = await account.sign_message([b"hello"])

    assert len(output.signatures) == 1
    assert verify_message(account.address, b"hello", output.signatures[0])
    assert not verify_message(account.address, b"hellx", output.signatures[0])


@pytest.mark.asyncio
async def test_sign_message_batch_order(alice):
    messages = [b"first", bytearray(b"second"), memoryview(b"third")]

    output = await alice.sign_message(messages)

    assert len(output.signatures) == 3
    for message, signature in zip(messages, output.signatures):
        assert isinstance(signature, bytes)
        assert verify_message(alice.address, bytes(message), signature)


@pytest.mark.asyncio
async def test_sign_message_empty_batch(alice):
    assert (await alice.sign_message([])).signatures == []


# ============================================
# sign_transaction
# ============================================

@pytest.mark.asyncio
async def test_sign_transaction_preserves_length_and_order(alice, make_transaction):
    raws = [make_transaction([alice.address]) for _ in range(5)]

    output = await alice.sign_transaction(raws)

    assert len(output.transactions) == 5
    for raw, signed in zip(raws, output.transactions):
        original = Transaction.from_bytes(raw)
        tx = Transaction.from_bytes(signed)
        assert tx.message == original.message
        assert verify_message(alice.address, tx.message, tx.signature)


@pytest.mark.asyncio
async def test_sign_transaction_multisig_keeps_other_signatures(alice, bob, make_transaction):
    raw = make_transaction([bob.address, alice.address])

    # Bob signs first, Alice adds her partial signature afterwards
    signed_by_bob = (await bob.sign_transaction([raw])).transactions[0]
    signed_by_both = (await alice.sign_transaction([signed_by_bob])).transactions[0]

    tx = Transaction.from_bytes(signed_by_both)
    assert tx.signatures[0] == Transaction.from_bytes(signed_by_bob).signatures[0]
    assert verify_message(bob.address, tx.message, tx.signatures[0])
    assert verify_message(alice.address, tx.message, tx.signatures[1])


@pytest.mark.asyncio
async def test_sign_transaction_partially_signed_is_not_rejected(alice, bob, make_transaction):
    raw = make_transaction([bob.address, alice.address])

    output = await alice.sign_transaction([raw])

    tx = Transaction.from_bytes(output.transactions[0])
    assert tx.signatures[0] == EMPTY_SIGNATURE
    assert tx.is_signed_by(alice.address)


@pytest.mark.asyncio
async def test_sign_transaction_versioned(alice, make_transaction):
    raw = make_transaction([alice.address], version=0)

    output = await alice.sign_transaction([raw])

    tx = Transaction.from_bytes(output.transactions[0])
    assert tx.version == 0
    assert verify_message(alice.address, tx.message, tx.signature)


@pytest.mark.asyncio
async def test_sign_transaction_invalid_encoding_aborts_batch(alice, make_transaction):
    good = make_transaction([alice.address])

    with pytest.raises(InvalidTransactionEncoding) as exc_info:
        await alice.sign_transaction([good, b"\x01garbage"])

    assert exc_info.value.index == 1
    assert "Transaction 1" in str(exc_info.value)


@pytest.mark.asyncio
async def test_sign_transaction_unknown_signer(alice, bob, make_transaction):
    with pytest.raises(UnknownSigner) as exc_info:
        await alice.sign_transaction([make_transaction([alice.address]), make_transaction([bob.address])])

    assert exc_info.value.index == 1


# ============================================
# sign_and_submit_transaction
# ============================================

@pytest.mark.asyncio
async def test_sign_and_submit_returns_raw_primary_signatures(alice, fake_client, make_transaction):
    raws = [make_transaction([alice.address]) for _ in range(3)]

    output = await alice.sign_and_submit_transaction(raws)

    assert output.all_ok
    assert len(output.signatures) == 3
    assert len(fake_client.submitted) == 3
    for submitted, signature in zip(fake_client.submitted, output.signatures):
        tx = Transaction.from_bytes(submitted)
        assert signature == tx.signature
        assert len(signature) == 64


@pytest.mark.asyncio
async def test_sign_and_submit_reports_failures_per_item(make_transaction):
    client = FakeChainClient(reject={1})
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, client=client)
    raws = [make_transaction([account.address]) for _ in range(3)]

    output = await account.sign_and_submit_transaction(raws)

    assert not output.all_ok
    assert output.results[0].ok and output.results[2].ok
    assert output.signatures[1] is None
    error = output.results[1].error
    assert isinstance(error, SubmissionFailed)
    assert error.index == 1
    assert error.code == -32002
    assert output.errors == [error]


@pytest.mark.asyncio
async def test_sign_and_submit_requires_all_signatures(alice, bob, fake_client, make_transaction):
    raws = [make_transaction([alice.address]), make_transaction([alice.address, bob.address])]

    with pytest.raises(MissingSignatures) as exc_info:
        await alice.sign_and_submit_transaction(raws)

    assert exc_info.value.index == 1
    # Nothing is sent when the batch fails before submission
    assert fake_client.submitted == []


@pytest.mark.asyncio
async def test_sign_and_submit_timeout_is_not_retried(make_transaction):
    client = FakeChainClient(stall={0})
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, client=client)
    raws = [make_transaction([account.address]) for _ in range(2)]

    output = await account.sign_and_submit_transaction(raws, timeout=0.05)

    assert isinstance(output.results[0].error, SubmissionTimeout)
    assert output.results[1].ok
    assert len(client.submitted) == 2


@pytest.mark.asyncio
async def test_sign_and_submit_cancellation_propagates(make_transaction):
    client = FakeChainClient(stall={0})
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, client=client)

    task = asyncio.ensure_future(account.sign_and_submit_transaction([make_transaction([account.address])]))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(client.submitted) == 1


@pytest.mark.asyncio
async def test_sign_and_submit_unexpected_client_error_is_per_item(make_transaction):
    client = FakeChainClient(broken={1})
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, client=client)
    raws = [make_transaction([account.address]) for _ in range(3)]

    output = await account.sign_and_submit_transaction(raws)

    # 已提交的交易签名不能丢
    assert output.results[0].ok and output.results[2].ok
    error = output.results[1].error
    assert isinstance(error, SubmissionFailed)
    assert error.index == 1
    assert isinstance(error.__cause__, ConnectionResetError)
    assert "socket closed" in str(error)
    assert len(client.submitted) == 3


@pytest.mark.asyncio
async def test_submission_error_keeps_cause(make_transaction):
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    client = SolanaRpcClient("http://node", transport=httpx.MockTransport(handler))
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, client=client)

    output = await account.sign_and_submit_transaction([make_transaction([account.address])])

    error = output.results[0].error
    assert isinstance(error, SubmissionTimeout)
    assert error.index == 0
    assert isinstance(error.__cause__, httpx.ReadTimeout)
    await client.close()


@pytest.mark.asyncio
async def test_close_leaves_passed_in_client_open(alice, fake_client):
    await alice.close()

    assert fake_client.closed is False
    assert alice.client is fake_client


@pytest.mark.asyncio
async def test_close_releases_client_built_from_config(config):
    account = WalletAccount.generate(Chain.SOLANA_DEVNET)
    client = account.client
    http_client = client._get_client()

    await account.close()

    assert http_client.is_closed
    assert client._client is None
    # A later operation builds a fresh client
    assert account.client is not client
    await account.close()


def test_client_built_from_config(config):
    account = WalletAccount.generate(Chain.SOLANA_TESTNET)

    client = account.client

    assert isinstance(client, SolanaRpcClient)
    assert client.rpc_url == "https://api.testnet.solana.com"
    assert account.submit_timeout == 30.0
    assert account.client is client


# ============================================
# encrypt / decrypt
# ============================================

@pytest.mark.asyncio
async def test_encrypt_decrypt_scenario(alice, bob):
    encrypted = await alice.encrypt([EncryptInput(public_key=bob.address, cleartexts=[b"secret"])])

    decrypted = await bob.decrypt([
        DecryptInput(public_key=alice.address, ciphertexts=encrypted[0].ciphertexts, nonces=encrypted[0].nonces)
    ])
    assert decrypted[0].cleartexts == [b"secret"]

    # Wrong counterparty derives a different shared key
    with pytest.raises(AuthenticationFailed):
        await alice.decrypt([
            DecryptInput(public_key=alice.address, ciphertexts=encrypted[0].ciphertexts, nonces=encrypted[0].nonces)
        ])
    carol = WalletAccount.generate(Chain.SOLANA_DEVNET)
    with pytest.raises(AuthenticationFailed):
        await carol.decrypt([
            DecryptInput(public_key=alice.address, ciphertexts=encrypted[0].ciphertexts, nonces=encrypted[0].nonces)
        ])


@pytest.mark.asyncio
async def test_shared_key_is_symmetric(alice, bob):
    encrypted = await alice.encrypt([EncryptInput(public_key=bob.address, cleartexts=[b"secret"])])

    # X25519 gives both ends the same key, so the sender can re-open its own message
    decrypted = await alice.decrypt([
        DecryptInput(public_key=bob.address, ciphertexts=encrypted[0].ciphertexts, nonces=encrypted[0].nonces)
    ])
    assert decrypted[0].cleartexts == [b"secret"]


@pytest.mark.asyncio
@pytest.mark.parametrize("cipher", list(Cipher))
async def test_encrypt_round_trip_each_cipher(alice, bob, cipher):
    cleartexts = [b"a", b"", b"\x00" * 1000]

    encrypted = await alice.encrypt([EncryptInput(bob.address, cleartexts, cipher=cipher)])

    output = encrypted[0]
    assert output.cipher == cipher
    assert len(output.ciphertexts) == len(output.nonces) == 3
    assert len(set(output.nonces)) == 3

    decrypted = await bob.decrypt([DecryptInput(alice.address, output.ciphertexts, output.nonces, cipher=cipher)])
    assert decrypted[0].cleartexts == cleartexts
    assert decrypted[0].cipher == cipher


@pytest.mark.asyncio
async def test_encrypt_reports_default_cipher(alice, bob):
    encrypted = await alice.encrypt([EncryptInput(bob.address, [b"x"])])
    assert encrypted[0].cipher == Cipher.X25519_XSALSA20_POLY1305


@pytest.mark.asyncio
async def test_encrypt_multiple_inputs_keep_order(alice, bob):
    carol = WalletAccount.generate(Chain.SOLANA_DEVNET)

    encrypted = await alice.encrypt([
        EncryptInput(bob.address, [b"to bob"]),
        EncryptInput(carol.address, [b"to carol 1", b"to carol 2"]),
    ])

    assert [len(o.ciphertexts) for o in encrypted] == [1, 2]
    from_carol = await carol.decrypt([DecryptInput(alice.address, encrypted[1].ciphertexts, encrypted[1].nonces)])
    assert from_carol[0].cleartexts == [b"to carol 1", b"to carol 2"]


@pytest.mark.asyncio
async def test_encrypt_unsupported_cipher_aborts_batch(bob):
    account = WalletAccount.generate(Chain.SOLANA_DEVNET, ciphers=[Cipher.X25519_XSALSA20_POLY1305])

    with pytest.raises(UnsupportedCipher):
        await account.encrypt([
            EncryptInput(bob.address, [b"ok"]),
            EncryptInput(bob.address, [b"nope"], cipher=Cipher.X25519_CHACHA20_POLY1305),
        ])

    with pytest.raises(UnsupportedCipher):
        await account.encrypt([EncryptInput(bob.address, [b"nope"], cipher="aes-128-ecb")])


@pytest.mark.asyncio
async def test_decrypt_tampered_aborts_whole_batch(alice, bob):
    first = (await alice.encrypt([EncryptInput(bob.address, [b"one"])]))[0]
    second = (await alice.encrypt([EncryptInput(bob.address, [b"two"])]))[0]
    tampered = bytearray(second.ciphertexts[0])
    tampered[-1] ^= 0x01

    with pytest.raises(AuthenticationFailed) as exc_info:
        await bob.decrypt([
            DecryptInput(alice.address, first.ciphertexts, first.nonces),
            DecryptInput(alice.address, [bytes(tampered)], second.nonces),
        ])

    assert "Decrypt input 1" in str(exc_info.value)


@pytest.mark.asyncio
@pytest.mark.parametrize("cipher", list(Cipher))
async def test_decrypt_every_bit_flip_fails(alice, bob, cipher):
    output = (await alice.encrypt([EncryptInput(bob.address, [b"abc"], cipher=cipher)]))[0]
    ciphertext, nonce = output.ciphertexts[0], output.nonces[0]

    for target in ("ciphertext", "nonce"):
        original = ciphertext if target == "ciphertext" else nonce
        for bit in range(0, len(original) * 8, 7):
            flipped = bytearray(original)
            flipped[bit // 8] ^= 1 << (bit % 8)
            c, n = (bytes(flipped), nonce) if target == "ciphertext" else (ciphertext, bytes(flipped))
            with pytest.raises(AuthenticationFailed):
                await bob.decrypt([DecryptInput(alice.address, [c], [n], cipher=cipher)])


@pytest.mark.asyncio
async def test_decrypt_mismatched_lengths(alice, bob):
    output = (await alice.encrypt([EncryptInput(bob.address, [b"a", b"b"])]))[0]

    with pytest.raises(ValueError):
        await bob.decrypt([DecryptInput(alice.address, output.ciphertexts, output.nonces[:1])])
