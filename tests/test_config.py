import argparse
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from geoload.config import GeneratorConfig, apply_overrides, load_json_config, parse_property


def blank_args(**overrides) -> argparse.Namespace:
    values = {
        "allow_env_overrides": False,
        "store": None,
        "store_host": None,
        "store_port": None,
        "store_user": None,
        "store_password": None,
        "store_socket": None,
        "store_database": None,
        "store_table": None,
        "corpus": None,
        "workers": None,
        "operations": None,
        "duration": None,
        "output": None,
        "distribution": None,
        "seed": None,
        "properties": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestGeneratorConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        config = GeneratorConfig.from_properties({})
        self.assertEqual(config.total_record_count, 13348)
        self.assertEqual(config.record_count, 1000000)
        self.assertEqual((config.window.limit_min, config.window.limit_max), (10, 100))
        self.assertEqual((config.window.offset_min, config.window.offset_max), (10, 100))
        self.assertEqual(config.distribution, "uniform")
        self.assertTrue(config.read_polygon)
        self.assertIsNone(config.seed)
        self.assertEqual(config.proportions, {})

    def test_string_properties(self) -> None:
        config = GeneratorConfig.from_properties(
            {
                "totalrecordcount": "500",
                "geo_querylimit_min": "40",
                "geo_querylimit_max": "4",
                "geo_request_distribution": "latest",
                "geo_read_polygon": "false",
                "geo_seed": "12",
                "geo_near": "0.5",
                "geo_scan": "0",
                "geo_insert": 1,
            }
        )
        self.assertEqual(config.total_record_count, 500)
        self.assertEqual((config.window.limit_min, config.window.limit_max), (4, 40))
        self.assertEqual(config.distribution, "latest")
        self.assertFalse(config.read_polygon)
        self.assertEqual(config.seed, 12)
        self.assertEqual(config.proportions, {"GEO_INSERT": 1.0, "GEO_NEAR": 0.5})

    def test_bad_number_names_property(self) -> None:
        with self.assertRaisesRegex(ValueError, "geo_offset_max"):
            GeneratorConfig.from_properties({"geo_offset_max": "lots"})

    def test_negative_proportion(self) -> None:
        with self.assertRaises(ValueError):
            GeneratorConfig.from_properties({"geo_box": -1})

    def test_parse_property(self) -> None:
        self.assertEqual(parse_property("geo_near = 0.3"), ("geo_near", "0.3"))
        with self.assertRaises(argparse.ArgumentTypeError):
            parse_property("geo_near")


class TestLoadJsonConfig(unittest.TestCase):
    def test_missing_file(self) -> None:
        with self.assertRaises(SystemExit):
            load_json_config("/nonexistent/geo_config.json")

    def test_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "bad.json"
            path.write_text("{", encoding="utf-8")
            with self.assertRaises(SystemExit):
                load_json_config(str(path))

    def test_bundled_config_loads(self) -> None:
        path, data = load_json_config(None)
        self.assertEqual(path.name, "geo_config.json")
        config = GeneratorConfig.from_properties(data["workload"])
        self.assertEqual(len(config.proportions), 6)


class TestApplyOverrides(unittest.TestCase):
    CONFIG = {
        "counter_store": {"backend": "mysql", "host": "db1", "port": 3307, "database": "geo"},
        "run": {"workers": 3, "operations": 50, "output": "trace.jsonl"},
        "workload": {"geo_request_distribution": "zipfian", "geo_near": 1},
    }

    def test_config_values_fill_unset_args(self) -> None:
        args = blank_args()
        apply_overrides(args, json.loads(json.dumps(self.CONFIG)))
        self.assertEqual(args.store, "mysql")
        self.assertEqual(args.store_port, 3307)
        self.assertEqual(args.store_user, "root")
        self.assertEqual(args.workers, 3)
        self.assertEqual(args.workload_properties["geo_request_distribution"], "zipfian")

    def test_cli_wins_over_config(self) -> None:
        args = blank_args(workers=8, distribution="latest", seed=3, properties=[("geo_near", "0.2")])
        apply_overrides(args, self.CONFIG)
        self.assertEqual(args.workers, 8)
        self.assertEqual(args.workload_properties["geo_request_distribution"], "latest")
        self.assertEqual(args.workload_properties["geo_seed"], 3)
        self.assertEqual(args.workload_properties["geo_near"], "0.2")

    def test_env_ignored_without_flag(self) -> None:
        args = blank_args()
        with mock.patch.dict(os.environ, {"COUNTER_HOST": "db9", "GEO_WORKERS": "6"}):
            applied, ignored = apply_overrides(args, self.CONFIG)
        self.assertEqual(applied, [])
        self.assertEqual(sorted(ignored), ["COUNTER_HOST", "GEO_WORKERS"])
        self.assertEqual(args.store_host, "db1")
        self.assertEqual(args.workers, 3)

    def test_env_applied_with_flag(self) -> None:
        args = blank_args(allow_env_overrides=True)
        with mock.patch.dict(os.environ, {"COUNTER_PORT": "3310", "GEO_SEED": "5"}):
            applied, _ = apply_overrides(args, self.CONFIG)
        self.assertEqual(sorted(applied), ["COUNTER_PORT", "GEO_SEED"])
        self.assertEqual(args.store_port, 3310)
        self.assertEqual(args.workload_properties["geo_seed"], 5)


if __name__ == "__main__":
    unittest.main()
