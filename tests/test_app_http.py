import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from fastapi.testclient import TestClient

os.environ["USE_DB"] = "0"
os.environ.pop("STRATA_MANIFEST_DIR", None)

import app.main as main
from app.config import Settings
from app.resource_manifest import load_resource
from app.stores import MemoryRecordStore


FLEETS = {"resource": "fleets", "fields": {"name": {"type": "string", "required": True}}}
SHIPS = {
    "resource": "ships",
    "fields": {
        "name": {"type": "string", "required": True},
        "crew": {"type": "number"},
        "fleet_id": {"type": "reference", "entity": "fleets"},
    },
    "search": ["name"],
    "sort": {"fields": ["name"], "default": "name"},
}


class TestAppHttp(unittest.TestCase):
    def _client(self, settings=None, ships=None):
        fleets = load_resource(FLEETS)
        ships = load_resource(ships or SHIPS)
        self.store = MemoryRecordStore(
            {"fleets": fleets.storage_definition(), "ships": ships.storage_definition()}
        )
        self.fleet = self.store.create("fleets", {"name": "MCRN"})
        self.roci = self.store.create("ships", {"name": "Rocinante", "crew": 4})
        self.store.create("ships", {"name": "Donnager", "crew": 900, "fleet_id": self.fleet.id})
        app = main.create_app([fleets, ships], storage=self.store, settings=settings or Settings())
        return TestClient(app, follow_redirects=False)

    def test_lists_resources(self) -> None:
        client = self._client()
        res = client.get("/admin")
        body = res.json()
        self.assertTrue(body["ok"])
        self.assertEqual([item["route_key"] for item in body["resources"]], ["fleets", "ships"])
        self.assertTrue(body["config_hash"].startswith("sha256:"))
        self.assertEqual(body["notices"], [])

    def test_index_renders_json_envelope(self) -> None:
        client = self._client()
        res = client.get("/admin/ships", params={"q": "roc"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["view"], "index")
        self.assertEqual(body["action"], {"kind": "index", "origin": "default", "category": "read"})
        self.assertEqual([rec["values"]["name"] for rec in body["records"]], ["Rocinante"])
        self.assertEqual(body["rows"][0]["actions"][1]["href"], f"/admin/ships/{self.roci.id}/edit")
        self.assertEqual(body["resource"]["route_key"], "ships")
        self.assertEqual(body["query_form"]["q"], "roc")

    def test_unknown_resource_is_404(self) -> None:
        res = self._client().get("/admin/planets")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "RESOURCE_NOT_FOUND")

    def test_disallowed_format_redirects(self) -> None:
        client = self._client()
        res = client.get("/admin/ships", params={"format": "csv", "q": "roc"})
        self.assertEqual(res.status_code, 302)
        self.assertEqual(res.headers["location"], "/admin/ships?q=roc")
        res = client.get("/admin/ships?format=xlsx&tag=a&tag=b")
        self.assertEqual(res.status_code, 302)
        self.assertEqual(res.headers["location"], "/admin/ships?tag=a&tag=b")
        self.assertEqual(client.get(res.headers["location"]).status_code, 200)

    def test_csv_export_when_enabled(self) -> None:
        client = self._client(settings=Settings(enabled_formats=("csv",)))
        res = client.get("/admin/ships", params={"format": "csv"})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.headers["content-type"].startswith("text/csv"))
        lines = res.text.strip().splitlines()
        self.assertEqual(lines[0], "Name,Crew,Fleet")
        self.assertEqual(lines[1].split(",")[:2], ["Donnager", "900"])

    def test_resource_level_csv_flag(self) -> None:
        client = self._client(ships={**SHIPS, "csv": True})
        res = client.get("/admin/ships", params={"format": "csv"})
        self.assertEqual(res.status_code, 200)

    def test_create_and_show(self) -> None:
        client = self._client()
        res = client.post("/admin/ships", json={"record": {"name": "Tachi", "crew": 4}})
        self.assertEqual(res.status_code, 303)
        location = res.headers["location"]
        self.assertTrue(location.startswith("/admin/ships/"))
        shown = client.get(location).json()
        self.assertEqual(shown["view"], "show")
        self.assertEqual(shown["record"]["values"]["name"], "Tachi")

    def test_create_invalid_rerenders_form(self) -> None:
        client = self._client()
        res = client.post("/admin/ships", json={"record": {"name": "", "crew": 2}})
        self.assertEqual(res.status_code, 400)
        body = res.json()
        self.assertFalse(body["ok"])
        self.assertEqual(body["view"], "new")
        self.assertEqual(body["action"]["kind"], "new")
        self.assertEqual(body["action"]["origin"], "explicit")
        self.assertEqual(body["record"]["values"], {"name": "", "crew": 2})
        self.assertEqual(body["errors"][0]["code"], "REQUIRED_FIELD")
        self.assertEqual([item["name"] for item in body["form"]["fields"]], ["name", "crew", "fleet_id"])

    def test_invalid_json_body_is_treated_as_empty(self) -> None:
        client = self._client()
        res = client.post("/admin/ships", content=b"not json", headers={"content-type": "application/json"})
        self.assertEqual(res.status_code, 400)

    def test_update_via_patch(self) -> None:
        client = self._client()
        res = client.patch(f"/admin/ships/{self.roci.id}", json={"record": {"crew": 6}})
        self.assertEqual(res.status_code, 303)
        self.assertEqual(res.headers["location"], f"/admin/ships/{self.roci.id}")
        edit = client.get(f"/admin/ships/{self.roci.id}/edit").json()
        self.assertEqual(edit["view"], "edit")
        self.assertEqual(edit["record"]["values"]["crew"], 6)

    def test_destroy_blocked_sets_flash_once(self) -> None:
        client = self._client()
        res = client.delete(f"/admin/fleets/{self.fleet.id}")
        self.assertEqual(res.status_code, 303)
        self.assertEqual(res.headers["location"], f"/admin/fleets/{self.fleet.id}")

        shown = client.get(res.headers["location"]).json()
        self.assertEqual(
            shown["flash"],
            {"alert": "Couldn't delete record: IntegrityConstraintViolation (fk_ships_fleet_id)"},
        )
        again = client.get(res.headers["location"]).json()
        self.assertEqual(again["flash"], {})
        self.assertTrue(self.store.exists("fleets", self.fleet.id))

    def test_destroy_success_redirects_to_listing(self) -> None:
        client = self._client()
        res = client.delete(f"/admin/ships/{self.roci.id}")
        self.assertEqual(res.status_code, 303)
        self.assertEqual(res.headers["location"], "/admin/ships")
        self.assertFalse(self.store.exists("ships", self.roci.id))

    def test_missing_record_is_404(self) -> None:
        res = self._client().get("/admin/ships/missing")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["view"], "not_found")

    def test_advisory_notice_on_every_page(self) -> None:
        client = self._client(settings=Settings(asset_version="0.0.1"))
        body = client.get("/admin/ships").json()
        self.assertEqual(len(body["notices"]), 1)
        self.assertIn("0.0.1", body["notices"][0])

    def test_custom_namespace(self) -> None:
        client = self._client(settings=Settings(namespace="ops"))
        res = client.get("/ops/ships")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["collection_actions"][0]["href"], "/ops/ships/new")
        self.assertEqual(client.get("/admin/ships").status_code, 404)


if __name__ == "__main__":
    unittest.main()
