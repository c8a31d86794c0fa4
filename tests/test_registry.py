"""
Unit tests for the export registry
"""

import threading
import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orchestration.errors import DuplicateKeyError, ExportTypeError, UnresolvedKeyError
from orchestration.registry import ExportRegistry


class TestExportRegistry(unittest.TestCase):
    """Test write-once publishing and read-after-write resolution"""

    def setUp(self):
        self.registry = ExportRegistry()

    def test_publish_then_resolve(self):
        self.registry.publish("network.vpc.id", "vpc-123", producer="network")
        self.assertEqual(self.registry.resolve("network.vpc.id"), "vpc-123")
        entry = self.registry.entry("network.vpc.id")
        self.assertEqual(entry.producer, "network")
        self.assertIsNotNone(entry.published_at.tzinfo)

    def test_second_publish_fails(self):
        self.registry.publish("network.vpc.id", "vpc-123")
        with self.assertRaises(DuplicateKeyError):
            self.registry.publish("network.vpc.id", "vpc-456")
        self.assertEqual(self.registry.resolve("network.vpc.id"), "vpc-123")

    def test_unpublished_key_fails(self):
        with self.assertRaises(UnresolvedKeyError) as ctx:
            self.registry.resolve("network.vpc.id")
        self.assertEqual(ctx.exception.key, "network.vpc.id")
        with self.assertRaises(UnresolvedKeyError):
            self.registry.resolve_list("network.vpc.id")

    def test_list_values(self):
        self.registry.publish("network.subnets.private-ids", ["subnet-1", "subnet-2"])
        self.assertEqual(self.registry.resolve_list("network.subnets.private-ids"), ["subnet-1", "subnet-2"])
        with self.assertRaises(ExportTypeError):
            self.registry.resolve("network.subnets.private-ids")

    def test_scalar_resolves_as_single_element_list(self):
        self.registry.publish("network.vpc.id", "vpc-123")
        self.assertEqual(self.registry.resolve_list("network.vpc.id"), ["vpc-123"])

    def test_invalid_values_are_rejected(self):
        for value in (42, None, ["subnet-1", 2], {"a": "b"}):
            with self.subTest(value=value):
                with self.assertRaises(ExportTypeError):
                    self.registry.publish("bad.key", value)
        self.assertNotIn("bad.key", self.registry)

    def test_publish_all_is_atomic(self):
        self.registry.publish("infra.eks.cluster-name", "dev-eks-cluster", producer="infrastructure")
        with self.assertRaises(DuplicateKeyError):
            self.registry.publish_all("observability", {
                "obs.grafana.endpoint": "g.example.com",
                "infra.eks.cluster-name": "other",
            })
        self.assertNotIn("obs.grafana.endpoint", self.registry)
        self.assertEqual(len(self.registry), 1)

    def test_as_dict_and_published_by(self):
        self.registry.publish_all("network", {"network.vpc.id": "vpc-1", "network.subnets.public-ids": ["s-1"]})
        self.registry.publish("obs.grafana.endpoint", "g", producer="observability")
        self.assertEqual(self.registry.as_dict(), {
            "network.vpc.id": "vpc-1",
            "network.subnets.public-ids": ["s-1"],
            "obs.grafana.endpoint": "g",
        })
        self.assertEqual(self.registry.published_by("network"), ["network.vpc.id", "network.subnets.public-ids"])

    def test_concurrent_publishes_of_one_key(self):
        errors = []
        barrier = threading.Barrier(8)

        def publish(i):
            barrier.wait()
            try:
                self.registry.publish("shared.key", f"value-{i}")
            except DuplicateKeyError as e:
                errors.append(e)

        threads = [threading.Thread(target=publish, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(errors), 7)
        self.assertEqual(len(self.registry), 1)


class TestRegistryView(unittest.TestCase):
    """Test the read-only, producer-scoped view"""

    def setUp(self):
        self.registry = ExportRegistry()
        self.registry.publish("network.vpc.id", "vpc-1", producer="network")
        self.registry.publish("obs.grafana.endpoint", "g", producer="observability")

    def test_unscoped_view_sees_everything(self):
        view = self.registry.view()
        self.assertEqual(view.resolve("obs.grafana.endpoint"), "g")
        self.assertEqual(sorted(view.keys()), ["network.vpc.id", "obs.grafana.endpoint"])

    def test_scoped_view_hides_other_producers(self):
        view = self.registry.view(["network"])
        self.assertEqual(view.resolve("network.vpc.id"), "vpc-1")
        self.assertTrue(view.contains("network.vpc.id"))
        self.assertFalse(view.contains("obs.grafana.endpoint"))
        with self.assertRaises(UnresolvedKeyError):
            view.resolve("obs.grafana.endpoint")
        self.assertEqual(view.keys(), ["network.vpc.id"])

    def test_view_is_read_only(self):
        view = self.registry.view()
        self.assertFalse(hasattr(view, "publish"))
        self.assertFalse(hasattr(view, "publish_all"))


if __name__ == "__main__":
    unittest.main()
