"""Tests for folding pod contexts into per-image scan records."""

from kubeforge.services.image_registry import build_scan_records
from kubeforge.services.session_state import PodContext


def _context(pod: str, container: str = "app", namespace: str = "default") -> PodContext:
    return PodContext(
        container_name=container, pod_name=pod, namespace=namespace, pod_uid=f"uid-{pod}"
    )


class TestBuildScanRecords:
    """Test build_scan_records."""

    def test_same_image_collapses_into_one_record(self):
        """Two pods running the same image share one record and one scan id."""
        records = build_scan_records(
            [("nginx:1.25", _context("web-1")), ("nginx:1.25", _context("web-2"))]
        )

        assert list(records) == ["nginx:1.25"]
        record = records["nginx:1.25"]
        assert [c.pod_name for c in record.contexts] == ["web-1", "web-2"]
        assert record.scan_uuid

    def test_distinct_images_get_distinct_scan_ids(self):
        records = build_scan_records(
            [("nginx:1.25", _context("web")), ("redis:7", _context("cache"))]
        )

        assert len(records) == 2
        assert records["nginx:1.25"].scan_uuid != records["redis:7"].scan_uuid

    def test_tag_variants_are_distinct_images(self):
        records = build_scan_records(
            [("nginx:1.25", _context("a")), ("nginx:1.26", _context("b"))]
        )
        assert set(records) == {"nginx:1.25", "nginx:1.26"}

    def test_enumeration_order_does_not_change_grouping(self):
        targets = [
            ("a", _context("p1")),
            ("b", _context("p2")),
            ("a", _context("p3")),
        ]
        forward = build_scan_records(targets)
        backward = build_scan_records(list(reversed(targets)))

        assert set(forward) == set(backward)
        for image in forward:
            assert {c.pod_name for c in forward[image].contexts} == {
                c.pod_name for c in backward[image].contexts
            }

    def test_new_records_are_not_completed(self):
        record = build_scan_records([("nginx", _context("web"))])["nginx"]
        assert record.completed is False
        assert record.vulnerabilities is None
        assert not record.done_event.is_set()

    def test_fresh_scan_ids_on_every_build(self):
        """Rebuilding for a new session never reuses an identifier."""
        first = build_scan_records([("nginx", _context("web"))])
        second = build_scan_records([("nginx", _context("web"))])
        assert first["nginx"].scan_uuid != second["nginx"].scan_uuid

    def test_empty(self):
        assert build_scan_records([]) == {}
