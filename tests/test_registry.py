"""Tests for the client registry and cycle manager."""

import unittest

from fedvault.cycles import CycleManager
from fedvault.errors import DuplicateRegistration, NotRegistered, UnknownClientId
from fedvault.registry import ClientRegistry, identity_bytes


class ClientRegistryTests(unittest.TestCase):
    def setUp(self):
        self.registry = ClientRegistry()

    def test_ids_are_dense_and_ordered(self):
        ids = [self.registry.register(f"client-{i}") for i in range(5)]
        self.assertEqual(ids, [0, 1, 2, 3, 4])
        self.assertEqual(self.registry.ids(), [0, 1, 2, 3, 4])

    def test_duplicate_registration_rejected(self):
        self.registry.register("alice")
        with self.assertRaises(DuplicateRegistration):
            self.registry.register("alice")
        # Registry unchanged by the failed attempt.
        self.assertEqual(len(self.registry), 1)
        self.assertEqual(self.registry.register("bob"), 1)

    def test_str_and_bytes_forms_are_the_same_identity(self):
        self.registry.register("alice")
        with self.assertRaises(DuplicateRegistration):
            self.registry.register(b"alice")
        self.assertEqual(self.registry.lookup_id(b"alice"), 0)

    def test_lookup_id(self):
        self.registry.register("alice")
        self.registry.register("bob")
        self.assertEqual(self.registry.lookup_id("bob"), 1)

    def test_lookup_unknown_identity(self):
        with self.assertRaises(NotRegistered):
            self.registry.lookup_id("ghost")

    def test_identity_of(self):
        self.registry.register("alice")
        self.assertEqual(self.registry.identity_of(0), "alice")

    def test_identity_of_out_of_range(self):
        self.registry.register("alice")
        with self.assertRaises(UnknownClientId):
            self.registry.identity_of(1)
        with self.assertRaises(UnknownClientId):
            self.registry.identity_of(-1)

    def test_snapshot_is_a_copy(self):
        self.registry.register("alice")
        snap = self.registry.snapshot()
        self.registry.register("bob")
        self.assertEqual(snap, ["alice"])

    def test_contains(self):
        self.registry.register("alice")
        self.assertIn("alice", self.registry)
        self.assertNotIn("bob", self.registry)
        self.assertNotIn(42, self.registry)

    def test_identity_bytes(self):
        self.assertEqual(identity_bytes("abc"), b"abc")
        self.assertEqual(identity_bytes(b"\x00\x01"), b"\x00\x01")


class CycleManagerTests(unittest.TestCase):
    def setUp(self):
        self.registry = ClientRegistry()
        self.cycles = CycleManager(self.registry)

    def test_starts_at_zero(self):
        self.assertEqual(self.cycles.current, 0)

    def test_advance_increments(self):
        self.assertEqual(self.cycles.advance(), 1)
        self.assertEqual(self.cycles.advance(), 2)
        self.assertEqual(self.cycles.current, 2)

    def test_advance_snapshots_current_registry(self):
        self.registry.register("a")
        self.registry.register("b")
        cycle = self.cycles.advance()
        self.assertEqual(self.cycles.participants_of(cycle), [0, 1])

    def test_snapshot_ignores_later_registrations(self):
        self.registry.register("a")
        cycle = self.cycles.advance()
        self.registry.register("late")
        self.assertEqual(self.cycles.participants_of(cycle), [0])

    def test_unadvanced_cycle_falls_back_to_full_registry(self):
        self.registry.register("a")
        self.registry.register("b")
        self.assertFalse(self.cycles.has_snapshot(0))
        self.assertEqual(self.cycles.participants_of(0), [0, 1])
        self.registry.register("c")
        self.assertEqual(self.cycles.participants_of(0), [0, 1, 2])
        # Future cycles fall back too.
        self.assertEqual(self.cycles.participants_of(99), [0, 1, 2])

    def test_snapshot_is_immutable_from_outside(self):
        self.registry.register("a")
        cycle = self.cycles.advance()
        self.cycles.participants_of(cycle).append(42)
        self.assertEqual(self.cycles.participants_of(cycle), [0])


if __name__ == "__main__":
    unittest.main()
