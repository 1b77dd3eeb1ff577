import json
import os
import sys
import tempfile
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from action_inquirer import classify
from action_resolver import Resolvable, Static, resolve_collection_actions, resolve_member_actions
from app.resource_manifest import ManifestError, load_manifest_dir, load_resource, validate_manifest
from record_pipeline import Record
from schema_engine import HAS_MANY_TEMPLATE


def _manifest(**overrides) -> dict:
    manifest = {
        "resource": "ships",
        "title": "Starships",
        "fields": {
            "name": {"type": "string", "required": True},
            "status": {"type": "enum", "options": ["active", "retired"]},
            "crew": {"type": "number"},
        },
        "display": [
            {"id": "name", "type": "string", "label": "Ship"},
            {"id": "status", "type": "badge", "styles": {"active": "green"}},
            {"id": "crew", "type": "string", "actions": ["show"]},
            {"id": "actions", "type": "actions"},
        ],
        "form": [
            {"id": "name", "type": "text"},
            {"id": "status", "type": "select", "collection": ["active", "retired"]},
            {
                "id": "crew_members",
                "type": "has_many",
                "fields": [
                    {"id": "name", "type": "text"},
                    {"id": "rank", "type": "select", "collection": ["captain", "pilot"]},
                ],
            },
        ],
        "search": ["name"],
        "filters": {"crew": ["gte", "lt"]},
        "sort": {"fields": ["name", "crew"], "default": "name", "direction": "desc"},
        "csv": True,
        "collection_actions": [{"key": "new", "label": "Commission", "href": "/admin/ships/new"}],
        "member_actions": [
            {"key": "show", "label": "Open", "href": "/admin/ships/{{ record.id }}"},
            {
                "key": "retire",
                "label": "Retire {{ record.name }}",
                "href": "/admin/ships/{{ record.id }}/retire",
                "method": "POST",
                "visible_when": {"op": "eq", "field": "status", "value": "active"},
            },
            {"key": "help", "label": "Help", "href": "/docs/ships"},
        ],
        "undeletable_when": {"op": "eq", "field": "status", "value": "active"},
    }
    manifest.update(overrides)
    return manifest


class TestValidateManifest(unittest.TestCase):
    def test_valid_manifest(self) -> None:
        self.assertEqual(validate_manifest(_manifest()), [])

    def test_reports_issues(self) -> None:
        manifest = _manifest(
            resource="",
            fields={"name": {"type": "blob"}, "fleet": {"type": "reference"}},
            search=["missing"],
            filters={"name": ["like"]},
            sort={"fields": ["crew"], "direction": "up"},
            display=[{"id": "name", "type": "sparkline"}, {"id": "name", "type": "string", "formats": ["pdf"]}],
            form=[{"type": "text"}, {"id": "x", "type": "generic"}],
            member_actions=[{"label": "{{ record.name "}, {"href": "/x"}],
            undeletable_when={"op": "like"},
        )
        codes = sorted({issue["code"] for issue in validate_manifest(manifest)})
        self.assertEqual(
            codes,
            [
                "ACTION_LABEL_MISSING",
                "CONDITION_UNKNOWN_OP",
                "FIELD_TYPE_INVALID",
                "FILTER_OP_UNKNOWN",
                "REFERENCE_TARGET_MISSING",
                "RESOURCE_KEY_MISSING",
                "SCHEMA_ENTRY_DUPLICATE",
                "SCHEMA_ENTRY_ID_MISSING",
                "SCHEMA_ENTRY_TYPE_UNKNOWN",
                "SCHEMA_FORMAT_UNKNOWN",
                "SCHEMA_TEMPLATE_MISSING",
                "SEARCH_FIELD_UNKNOWN",
                "SORT_DIRECTION_INVALID",
                "SORT_FIELD_UNKNOWN",
                "TEMPLATE_SYNTAX",
            ],
        )

    def test_not_an_object(self) -> None:
        self.assertEqual(validate_manifest([])[0]["code"], "MANIFEST_INVALID")

    def test_load_resource_raises_with_issues(self) -> None:
        with self.assertRaises(ManifestError) as ctx:
            load_resource(_manifest(resource=""))
        self.assertEqual(ctx.exception.issues[0]["code"], "RESOURCE_KEY_MISSING")


class TestManifestResource(unittest.TestCase):
    def setUp(self) -> None:
        self.resource = load_resource(_manifest())

    def test_listing_configuration(self) -> None:
        self.assertEqual(self.resource.route_key, "ships")
        self.assertEqual(self.resource.label, "Starships")
        self.assertEqual(self.resource.search_fields, ("name",))
        self.assertEqual(self.resource.sortable, ("name", "crew"))
        self.assertEqual(self.resource.default_direction, "desc")
        self.assertTrue(self.resource.csv_enabled)
        self.assertEqual(self.resource.field_types(), {"name": "string", "status": "enum", "crew": "number"})

    def test_display_schema(self) -> None:
        schema = self.resource.display_schema()
        index = schema.apply(classify("index", None), "html")
        self.assertEqual(index.names(), ["name", "status", "actions"])
        self.assertEqual(index["name"].label, "Ship")
        self.assertEqual(index["status"]["styles"], {"active": "green"})
        show = schema.apply(classify("show", None), "html")
        self.assertEqual(show.names(), ["name", "status", "crew"])

    def test_form_schema_nested(self) -> None:
        schema = self.resource.form_schema()
        self.assertEqual(schema.names(), ["name", "status", "crew_members"])
        crew = schema.fields["crew_members"]
        self.assertEqual(crew.template, HAS_MANY_TEMPLATE)
        self.assertEqual(crew.reader, "crew_members")
        self.assertEqual(crew.label, "Crew member")
        self.assertEqual(list(crew.nested.keys()), ["name", "rank"])
        self.assertEqual(crew.nested["rank"]["collection"], ["captain", "pilot"])
        self.assertEqual(self.resource.permitted_attributes(), ["name", "status", "crew_members"])

    def test_collection_actions_are_static(self) -> None:
        entries = self.resource.collection_actions()
        self.assertTrue(all(isinstance(entry, Static) for entry in entries))
        self.assertEqual([spec.label for spec in resolve_collection_actions(entries)], ["Commission"])

    def test_member_actions_render_per_record(self) -> None:
        entries = self.resource.member_actions(None)
        self.assertIsInstance(entries[0], Resolvable)
        self.assertIsInstance(entries[1], Resolvable)
        self.assertIsInstance(entries[2], Static)

        active = Record(entity="ships", id="s1", values={"name": "Rocinante", "status": "active"}, persisted=True)
        retired = Record(entity="ships", id="s2", values={"name": "Canterbury", "status": "retired"}, persisted=True)
        first = resolve_member_actions(entries, active)
        second = resolve_member_actions(entries, retired)

        self.assertEqual(first[0].href, "/admin/ships/s1")
        self.assertEqual(first[1].label, "Retire Rocinante")
        self.assertEqual(first[1].href, "/admin/ships/s1/retire")
        self.assertEqual(first[1].method, "post")
        self.assertFalse(first[1].hidden)
        self.assertEqual(second[1].label, "Retire Canterbury")
        self.assertTrue(second[1].hidden)
        self.assertEqual([spec.key for spec in second], ["show", "retire", "help"])

    def test_defaults_when_sections_omitted(self) -> None:
        resource = load_resource({"resource": "fleets", "fields": {"name": {"type": "string"}, "notes": {"type": "text"}}})
        self.assertEqual(resource.display_schema().names(), ["name", "notes", "actions"])
        self.assertEqual(resource.form_schema().fields["notes"].template, "form_field_textarea")
        keys = [spec.key for spec in resolve_member_actions(resource.member_actions(None), Record("fleets", "f1", persisted=True))]
        self.assertEqual(keys, ["show", "edit", "destroy"])
        self.assertEqual(resource.label, "Fleets")

    def test_storage_definition(self) -> None:
        definition = self.resource.storage_definition()
        self.assertEqual(set(definition.keys()), {"fields", "undeletable_when"})
        self.assertEqual(definition["fields"]["crew"], {"type": "number"})

    def test_list_fields_are_accepted(self) -> None:
        resource = load_resource({"resource": "crew", "fields": [{"id": "name", "type": "string"}]})
        self.assertEqual(resource.form_schema().names(), ["name"])


class TestLoadManifestDir(unittest.TestCase):
    def test_loads_sorted_json_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "b_ships.json"), "w", encoding="utf-8") as handle:
                json.dump(_manifest(), handle)
            with open(os.path.join(tmp, "a_fleets.json"), "w", encoding="utf-8") as handle:
                json.dump({"resource": "fleets", "fields": {"name": {"type": "string"}}}, handle)
            with open(os.path.join(tmp, "notes.txt"), "w", encoding="utf-8") as handle:
                handle.write("ignored")
            resources = load_manifest_dir(tmp)
        self.assertEqual([resource.route_key for resource in resources], ["fleets", "ships"])

    def test_invalid_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "bad.json"), "w", encoding="utf-8") as handle:
                json.dump({"fields": {}}, handle)
            with self.assertRaises(ManifestError):
                load_manifest_dir(tmp)


if __name__ == "__main__":
    unittest.main()
