"""
Tests for the decryption presentation registry and accessory lifecycle.
"""

from autopgp.presentation import DecryptionAccessory, DecryptionRegistry


def test_deliver_after_register_invokes_callback_once():
    registry = DecryptionRegistry()
    received = []
    registry.register("m1", received.append)

    assert registry.deliver("m1", "secret") is True
    assert received == ["secret"]


def test_deliver_without_registration_is_noop():
    registry = DecryptionRegistry()
    assert registry.deliver("missing", "secret") is False
    assert len(registry) == 0


def test_deliver_after_unregister_is_noop():
    registry = DecryptionRegistry()
    received = []
    registry.register("m1", received.append)
    registry.unregister("m1")

    assert registry.deliver("m1", "late") is False
    assert received == []
    assert "m1" not in registry


def test_register_overwrites_previous_callback():
    registry = DecryptionRegistry()
    first, second = [], []
    registry.register("m1", first.append)
    registry.register("m1", second.append)

    registry.deliver("m1", "text")
    assert first == []
    assert second == ["text"]
    assert len(registry) == 1


def test_unregister_unknown_id_is_noop():
    registry = DecryptionRegistry()
    registry.unregister("never-registered")
    assert len(registry) == 0


def test_accessory_mount_receives_and_dismisses():
    registry = DecryptionRegistry()
    changes = []
    accessory = DecryptionAccessory("m1", registry, on_change=lambda a: changes.append(a.decrypted_text))

    accessory.mount()
    assert "m1" in registry
    assert not accessory.visible

    registry.deliver("m1", "hello")
    assert accessory.decrypted_text == "hello"
    assert accessory.visible

    accessory.dismiss()
    assert accessory.decrypted_text is None
    assert not accessory.visible
    assert changes == ["hello", None]


def test_accessory_unmount_releases_registration():
    registry = DecryptionRegistry()
    accessory = DecryptionAccessory("m1", registry)
    accessory.mount()
    accessory.unmount()

    assert len(registry) == 0
    assert registry.deliver("m1", "late") is False
    assert accessory.decrypted_text is None


def test_remount_registers_again():
    registry = DecryptionRegistry()
    accessory = DecryptionAccessory("m1", registry)
    accessory.mount()
    accessory.unmount()
    accessory.mount()

    registry.deliver("m1", "again")
    assert accessory.decrypted_text == "again"


def test_stale_unmount_keeps_newer_registration():
    registry = DecryptionRegistry()
    old = DecryptionAccessory("m1", registry)
    new = DecryptionAccessory("m1", registry)

    old.mount()
    new.mount()
    old.unmount()

    assert registry.deliver("m1", "text") is True
    assert new.decrypted_text == "text"
    assert old.decrypted_text is None


def test_registry_stays_bounded_over_many_messages():
    registry = DecryptionRegistry()
    window = []
    for i in range(500):
        accessory = DecryptionAccessory(f"m{i}", registry)
        accessory.mount()
        window.append(accessory)
        if len(window) > 10:
            window.pop(0).unmount()

    assert len(registry) == 10
