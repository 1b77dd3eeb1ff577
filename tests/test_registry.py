import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.registry import ResourceRegistry
from app.resource_manifest import load_resource


def _resource(route_key: str, **fields):
    return load_resource({"resource": route_key, "fields": fields or {"name": {"type": "string"}}})


class TestResourceRegistry(unittest.TestCase):
    def test_register_and_list(self) -> None:
        registry = ResourceRegistry()
        result = registry.register(_resource("ships"))
        self.assertTrue(result["ok"])
        self.assertTrue(result["hash"].startswith("sha256:"))
        registry.register(_resource("fleets"))
        listed = registry.list()
        self.assertEqual([item["route_key"] for item in listed], ["fleets", "ships"])
        self.assertEqual(listed[1]["label"], "Ships")
        self.assertIsNotNone(registry.get("ships"))
        self.assertIsNone(registry.get("planets"))

    def test_duplicate_rejected(self) -> None:
        registry = ResourceRegistry()
        registry.register(_resource("ships"))
        result = registry.register(_resource("ships"))
        self.assertFalse(result["ok"])
        self.assertEqual(result["errors"][0]["code"], "RESOURCE_ALREADY_REGISTERED")

    def test_frozen_registry_rejects_registration(self) -> None:
        registry = ResourceRegistry()
        registry.freeze()
        self.assertTrue(registry.frozen)
        result = registry.register(_resource("ships"))
        self.assertEqual(result["errors"][0]["code"], "REGISTRY_FROZEN")
        self.assertEqual(registry.list(), [])

    def test_config_hash_tracks_declarations(self) -> None:
        first = ResourceRegistry()
        first.register(_resource("ships"))
        first.register(_resource("fleets"))
        second = ResourceRegistry()
        second.register(_resource("fleets"))
        second.register(_resource("ships"))
        self.assertEqual(first.config_hash(), second.config_hash())

        changed = ResourceRegistry()
        changed.register(_resource("ships", name={"type": "string"}, crew={"type": "number"}))
        changed.register(_resource("fleets"))
        self.assertNotEqual(first.config_hash(), changed.config_hash())


if __name__ == "__main__":
    unittest.main()
