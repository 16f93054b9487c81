"""
Tests for the PGPy engine, the async bridge and engine loading.
"""

import asyncio

import pgpy
import pytest

from autopgp.bridge import CryptoBridge
from autopgp.engine import ENGINE_UNAVAILABLE_NOTICE, UnavailableEngine, load_engine
from autopgp.errors import CryptoFailure, EngineUnavailable
from autopgp.pgpy_engine import PGPyEngine, UnlockedKey


def test_parse_empty_key_returns_none(engine):
    bridge = CryptoBridge(engine)
    assert asyncio.run(bridge.parse_key("")) is None
    assert asyncio.run(bridge.parse_key("   \n ")) is None


def test_parse_keys_rejects_empty_entry(engine, bob_keys):
    bridge = CryptoBridge(engine)
    with pytest.raises(CryptoFailure):
        asyncio.run(bridge.parse_keys([bob_keys.public, ""]))


def test_unlock_with_correct_passphrase(engine, alice_keys):
    bridge = CryptoBridge(engine)
    key = asyncio.run(bridge.unlock_private_key(alice_keys.private, alice_keys.passphrase))

    assert isinstance(key, UnlockedKey)
    assert key.key.is_protected


def test_unlock_with_wrong_passphrase_returns_none(engine, alice_keys):
    bridge = CryptoBridge(engine)
    assert asyncio.run(bridge.unlock_private_key(alice_keys.private, "wrong")) is None


def test_unlock_without_passphrase_returns_parsed_key(engine, bob_keys):
    bridge = CryptoBridge(engine)
    key = asyncio.run(bridge.unlock_private_key(bob_keys.private, ""))

    assert isinstance(key, pgpy.PGPKey)
    assert not key.is_public


def test_unlock_public_key_returns_none(engine, bob_keys):
    bridge = CryptoBridge(engine)
    assert asyncio.run(bridge.unlock_private_key(bob_keys.public, "anything")) is None


def test_unlock_malformed_key_returns_none(engine):
    bridge = CryptoBridge(engine)
    assert asyncio.run(bridge.unlock_private_key("garbage", "pw")) is None
    assert asyncio.run(bridge.unlock_private_key("", "pw")) is None


def test_encrypt_for_several_recipients_and_sign(engine, sender_keys, alice_keys, bob_keys):
    bridge = CryptoBridge(engine)

    async def scenario():
        signing_key = await bridge.unlock_private_key(sender_keys.private, sender_keys.passphrase)
        recipients = await bridge.parse_keys([alice_keys.public, bob_keys.public, sender_keys.public])
        armored = await bridge.encrypt_for_recipients("meet at noon", recipients, signing_key)

        alice = await bridge.unlock_private_key(alice_keys.private, alice_keys.passphrase)
        bob = await bridge.unlock_private_key(bob_keys.private, bob_keys.passphrase)
        sender = await bridge.unlock_private_key(sender_keys.private, sender_keys.passphrase)
        texts = [await bridge.decrypt_with_key(armored, key) for key in (alice, bob, sender)]
        return armored, texts

    armored, texts = asyncio.run(scenario())

    assert armored.startswith("-----BEGIN PGP MESSAGE-----")
    assert "meet at noon" not in armored
    assert texts == ["meet at noon"] * 3


def test_encrypted_message_carries_sender_signature(engine, sender_keys, bob_keys):
    bridge = CryptoBridge(engine)

    async def encrypt():
        signing_key = await bridge.unlock_private_key(sender_keys.private, sender_keys.passphrase)
        recipients = await bridge.parse_keys([bob_keys.public])
        return await bridge.encrypt_for_recipients("signed hello", recipients, signing_key)

    armored = asyncio.run(encrypt())

    bob_private = engine.parse_key(bob_keys.private)
    decrypted = bob_private.decrypt(engine.parse_message(armored))
    sender_public = engine.parse_key(sender_keys.public)

    assert decrypted.message == "signed hello"
    assert sender_public.verify(decrypted)


def test_decrypt_garbage_returns_none(engine, bob_keys):
    bridge = CryptoBridge(engine)
    key = asyncio.run(bridge.unlock_private_key(bob_keys.private, ""))

    assert asyncio.run(bridge.decrypt_with_key("-----BEGIN PGP MESSAGE-----\n\naGVsbG8gd29ybGQ=\n-----END PGP MESSAGE-----", key)) is None
    assert asyncio.run(bridge.decrypt_with_key("", key)) is None


def test_decrypt_with_wrong_key_returns_none(engine, sender_keys, alice_keys, bob_keys):
    bridge = CryptoBridge(engine)

    async def scenario():
        signing_key = await bridge.unlock_private_key(sender_keys.private, sender_keys.passphrase)
        recipients = await bridge.parse_keys([alice_keys.public])
        armored = await bridge.encrypt_for_recipients("for alice only", recipients, signing_key)
        bob = await bridge.unlock_private_key(bob_keys.private, "")
        return await bridge.decrypt_with_key(armored, bob)

    assert asyncio.run(scenario()) is None


def test_decrypted_bytes_are_decoded():
    class BytesEngine(PGPyEngine):
        def parse_message(self, armored):
            return armored

        def decrypt(self, message, decryption_key):
            return "café".encode("utf-8")

    bridge = CryptoBridge(BytesEngine())
    assert asyncio.run(bridge.decrypt_with_key("whatever", object())) == "café"


def test_unavailable_engine_fails_every_call():
    engine = UnavailableEngine("offline")
    bridge = CryptoBridge(engine)

    with pytest.raises(EngineUnavailable):
        engine.parse_key("x")
    with pytest.raises(EngineUnavailable):
        asyncio.run(bridge.parse_key("x"))
    with pytest.raises(EngineUnavailable):
        asyncio.run(bridge.unlock_private_key("x", "pw"))
    assert asyncio.run(bridge.decrypt_with_key("x", object())) is None


def test_load_engine_reports_failure_once():
    notices = []
    engine = load_engine("autopgp.does_not_exist", on_unavailable=notices.append)

    assert isinstance(engine, UnavailableEngine)
    assert notices == [ENGINE_UNAVAILABLE_NOTICE]


def test_load_engine_default_is_pgpy():
    notices = []
    engine = load_engine(on_unavailable=notices.append)

    assert isinstance(engine, PGPyEngine)
    assert notices == []
