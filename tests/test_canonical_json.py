import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from strata.canonical_json import CanonicalJsonTypeError, canonical_dumps


class TestCanonicalJson(unittest.TestCase):
    def test_key_ordering_is_deterministic(self) -> None:
        a = {"b": 1, "a": 2}
        b = {"a": 2, "b": 1}
        self.assertEqual(canonical_dumps(a), canonical_dumps(b))

    def test_nested_dict_ordering(self) -> None:
        obj = {"b": 1, "a": {"d": 4, "c": 3}}
        self.assertEqual(canonical_dumps(obj), '{"a":{"c":3,"d":4},"b":1}')

    def test_list_order_preserved(self) -> None:
        self.assertEqual(canonical_dumps({"list": [2, 1, 3]}), '{"list":[2,1,3]}')

    def test_tuple_serializes_as_list(self) -> None:
        self.assertEqual(canonical_dumps({"sortable": ("name", "id")}), '{"sortable":["name","id"]}')

    def test_set_serializes_sorted(self) -> None:
        self.assertEqual(canonical_dumps({"ops": {"lt", "eq", "gt"}}), '{"ops":["eq","gt","lt"]}')

    def test_non_ascii_preserved(self) -> None:
        out = canonical_dumps({"name": "café"})
        self.assertIn("café", out)
        self.assertNotIn("\\u", out)

    def test_non_string_key_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({1: "a"})

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({"bad": object()})

    def test_reject_nan(self) -> None:
        with self.assertRaises(ValueError):
            canonical_dumps({"bad": float("nan")})

    def test_reject_inf(self) -> None:
        with self.assertRaises(ValueError):
            canonical_dumps({"bad": float("-inf")})

    def test_numeric_distinction(self) -> None:
        self.assertNotEqual(canonical_dumps({"n": 1}), canonical_dumps({"n": 1.0}))


if __name__ == "__main__":
    unittest.main()
