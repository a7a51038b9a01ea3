import json
import unittest

from geoload.counters import MemoryCounterStore
from geoload.schema import INCIDENTS_SCHEMA
from geoload.tokenizer import backfill_leading, field_key, read_tokens, store_tokens, tokenize

TAG_COUNT = "properties:::TAG_COUNT"
WAIVER = "properties:::Waiver"
COORDS = "geometry:::coordinates"


def incident(**props):
    properties = {
        "OBJECTID": 1,
        "INCIDENT_NUMBER": "19-0001",
        "LOCATION": "1200 W WASHINGTON ST",
        "NOTIFICATION": "COMPLAINT",
        "INCIDENT_DATE": "2019-01-03",
        "TAG_COUNT": 5,
        "MONIKER_CLASS": "GANG",
        "SQ_FT": 12,
        "PROP_TYPE": "COMMERCIAL",
        "Waiver": "NO",
    }
    properties.update(props)
    return {
        "_id": {"$oid": "abc"},
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Point", "coordinates": [-111.5, 33.25]},
    }


class TestTokenize(unittest.TestCase):
    def test_full_document(self) -> None:
        tokens = tokenize(json.dumps(incident()), INCIDENTS_SCHEMA)
        self.assertEqual(set(tokens), set(INCIDENTS_SCHEMA.field_paths()))
        self.assertEqual(tokens["type"], "Feature")
        self.assertEqual(tokens["_id"], '{"$oid":"abc"}')
        self.assertEqual(tokens[TAG_COUNT], "5")
        self.assertEqual(tokens["properties:::LOCATION"], "1200 W WASHINGTON ST")
        self.assertEqual(tokens["geometry:::type"], "Point")
        self.assertEqual(tokens[COORDS], "-111.5,33.25")

    def test_integer_fields_accept_floats_and_numeric_strings(self) -> None:
        tokens = tokenize(json.dumps(incident(SQ_FT=12.0, OBJECTID="42")), INCIDENTS_SCHEMA)
        self.assertEqual(tokens["properties:::SQ_FT"], "12")
        self.assertEqual(tokens["properties:::OBJECTID"], "42")

    def test_non_finite_integer_field_fails_object_phase(self) -> None:
        for raw in ("1e400", "NaN", "-Infinity"):
            body = json.dumps(incident()).replace('"SQ_FT": 12', f'"SQ_FT": {raw}')
            with self.assertLogs(level="WARNING") as logs:
                tokens = tokenize(body, INCIDENTS_SCHEMA)
            self.assertIsNone(tokens["properties:::SQ_FT"], raw)
            self.assertEqual(tokens["type"], "Feature")
            self.assertIn("objects", logs.output[0])

    def test_numeric_id_is_truncated(self) -> None:
        doc = incident()
        doc["_id"] = 12.0
        self.assertEqual(tokenize(json.dumps(doc), INCIDENTS_SCHEMA)["_id"], "12")
        doc["_id"] = 7
        self.assertEqual(tokenize(json.dumps(doc), INCIDENTS_SCHEMA)["_id"], "7")

    def test_non_finite_coordinates_leave_token_null(self) -> None:
        body = json.dumps(incident()).replace("[-111.5, 33.25]", "[NaN, 33.25]")
        tokens = tokenize(body, INCIDENTS_SCHEMA)
        self.assertEqual(tokens["geometry:::type"], "Point")
        self.assertIsNone(tokens[COORDS])

    def test_missing_properties_leaves_fields_null(self) -> None:
        doc = incident()
        del doc["properties"]
        tokens = tokenize(json.dumps(doc), INCIDENTS_SCHEMA)
        self.assertIsNone(tokens[TAG_COUNT])
        self.assertEqual(tokens["geometry:::type"], "Point")

    def test_invalid_json_yields_all_null(self) -> None:
        with self.assertLogs(level="WARNING") as logs:
            tokens = tokenize("{not json", INCIDENTS_SCHEMA)
        self.assertTrue(all(value is None for value in tokens.values()))
        self.assertIn("Document parsing error", logs.output[0])

    def test_object_phase_failure_keeps_plain_fields(self) -> None:
        doc = incident()
        doc["properties"] = ["not", "an", "object"]
        with self.assertLogs(level="WARNING") as logs:
            tokens = tokenize(json.dumps(doc), INCIDENTS_SCHEMA)
        self.assertEqual(tokens["type"], "Feature")
        self.assertIsNone(tokens[TAG_COUNT])
        self.assertIsNone(tokens["geometry:::type"])
        self.assertIn("objects", logs.output[0])

    def test_plain_phase_failure_keeps_objects(self) -> None:
        doc = incident()
        doc["type"] = 7
        with self.assertLogs(level="WARNING") as logs:
            tokens = tokenize(json.dumps(doc), INCIDENTS_SCHEMA)
        self.assertIsNone(tokens["type"])
        self.assertEqual(tokens[TAG_COUNT], "5")
        self.assertIn("plain fields", logs.output[0])

    def test_nested_coordinates_are_not_flattened(self) -> None:
        doc = incident()
        doc["geometry"] = {"type": "Polygon", "coordinates": [[[-111.0, 33.0], [-111.5, 33.0], [-111.0, 33.0]]]}
        tokens = tokenize(json.dumps(doc), INCIDENTS_SCHEMA)
        self.assertEqual(tokens["geometry:::type"], "Polygon")
        self.assertIsNone(tokens[COORDS])


class TestBackfill(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryCounterStore()

    def test_field_key_layout(self) -> None:
        self.assertEqual(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 3), "usertable:::properties:::TAG_COUNT:::3")

    def test_null_copies_nearest_earlier_value(self) -> None:
        self.store.set(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 0), "1")
        self.store.set(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 1), "2")
        stored = store_tokens(self.store, INCIDENTS_SCHEMA, 2, {TAG_COUNT: None})
        self.assertEqual(stored[TAG_COUNT], "2")
        self.assertEqual(self.store.get(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 2)), "2")

    def test_null_without_history_stays_absent(self) -> None:
        stored = store_tokens(self.store, INCIDENTS_SCHEMA, 0, {TAG_COUNT: None})
        self.assertIsNone(stored[TAG_COUNT])
        self.assertIsNone(self.store.get(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 0)))

    def test_fields_valued_at_slot_zero_are_untouched(self) -> None:
        for path in INCIDENTS_SCHEMA.field_paths():
            self.store.set(field_key(INCIDENTS_SCHEMA, path, 0), "x")
        self.store.set(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 0), "1")
        self.store.set(field_key(INCIDENTS_SCHEMA, WAIVER, 2), "YES")
        complete = backfill_leading(self.store, INCIDENTS_SCHEMA, 2)

        self.assertTrue(complete)
        tokens = [read_tokens(self.store, INCIDENTS_SCHEMA, slot) for slot in range(3)]
        self.assertEqual([t[TAG_COUNT] for t in tokens], ["1", None, None])
        self.assertEqual([t[WAIVER] for t in tokens], ["x", None, "YES"])

    def test_leading_nulls_take_first_later_value(self) -> None:
        for path in INCIDENTS_SCHEMA.field_paths():
            self.store.set(field_key(INCIDENTS_SCHEMA, path, 2), "x")
        self.store.set(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 2), "9")

        complete = backfill_leading(self.store, INCIDENTS_SCHEMA, 2)

        self.assertTrue(complete)
        tokens = [read_tokens(self.store, INCIDENTS_SCHEMA, slot) for slot in range(3)]
        self.assertEqual([t[TAG_COUNT] for t in tokens], ["9", "9", "9"])

    def test_incomplete_when_a_field_never_has_a_value(self) -> None:
        self.store.set(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 1), "3")
        with self.assertLogs(level="DEBUG"):
            complete = backfill_leading(self.store, INCIDENTS_SCHEMA, 1)
        self.assertFalse(complete)
        self.assertEqual(self.store.get(field_key(INCIDENTS_SCHEMA, TAG_COUNT, 0)), "3")


if __name__ == "__main__":
    unittest.main()
