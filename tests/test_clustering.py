"""
test_clustering.py — Greedy anchor-based report clustering.

The grouping is deliberately order-dependent and non-transitive; several
tests pin that behaviour down so nobody "fixes" it by accident.
"""

import random

import pytest

from wardwatch.models.cluster import DistanceMode, ReportPoint
from wardwatch.services.clustering import cluster_reports, within_radius
from wardwatch.services.distance import distance_km


def pt(id_, lat, lng, **extra) -> ReportPoint:
    return ReportPoint(id=id_, lat=lat, lng=lng, **extra)


def member_ids(cluster) -> list:
    return [m.id for m in cluster.members]


# ── Basic cases ───────────────────────────────────────────────────────────────

class TestClusterReportsBasics:

    def test_empty_input(self):
        assert cluster_reports([], radius_km=1) == []

    def test_single_report_single_cluster(self):
        clusters = cluster_reports([pt(1, 0, 0)], radius_km=1)
        assert len(clusters) == 1
        assert member_ids(clusters[0]) == [1]

    def test_close_points_share_a_cluster(self):
        clusters = cluster_reports([pt(1, 0, 0), pt(2, 0, 0.001)], radius_km=1)
        assert len(clusters) == 1
        assert member_ids(clusters[0]) == [1, 2]

    def test_far_points_are_singletons(self):
        clusters = cluster_reports([pt(1, 0, 0), pt(2, 10, 10)], radius_km=1)
        assert [member_ids(c) for c in clusters] == [[1], [2]]

    def test_all_within_radius_gives_one_cluster(self):
        reports = [pt(i, -26.2 + i * 0.0005, 28.04 + i * 0.0005) for i in range(8)]
        clusters = cluster_reports(reports, radius_km=1)
        assert len(clusters) == 1
        assert clusters[0].count == 8

    def test_anchor_is_first_member_not_centroid(self):
        clusters = cluster_reports([pt("a", 1.0, 1.0), pt("b", 1.004, 1.004)], radius_km=1)
        assert clusters[0].coordinate.lat == 1.0
        assert clusters[0].coordinate.lng == 1.0
        assert clusters[0].id == "cluster-a"

    def test_accepts_plain_mappings_and_keeps_extra_fields(self):
        clusters = cluster_reports(
            [{"id": 7, "lat": 0, "lng": 0, "category": "water", "status": "open"}],
            radius_km=1,
        )
        member = clusters[0].members[0]
        assert member.id == 7
        assert member.model_dump()["category"] == "water"

    def test_members_keep_input_order(self):
        reports = [pt(3, 0, 0), pt(1, 0, 0.002), pt(2, 0, 0.001)]
        clusters = cluster_reports(reports, radius_km=1)
        assert member_ids(clusters[0]) == [3, 1, 2]


# ── Anchor semantics ──────────────────────────────────────────────────────────

class TestAnchorSemantics:

    def test_chain_joins_a_single_cluster_in_degree_mode(self):
        """A(0,0), B(0,0.005), C(0,0.01): one cluster although A–C exceeds 1 km."""
        a, b, c = pt("A", 0, 0), pt("B", 0, 0.005), pt("C", 0, 0.01)
        assert distance_km(a.lat, a.lng, c.lat, c.lng) > 1

        clusters = cluster_reports([a, b, c], radius_km=1)

        assert len(clusters) == 1
        assert member_ids(clusters[0]) == ["A", "B", "C"]

    def test_shared_neighbour_processed_first_pulls_in_distant_points(self):
        """Two points > radius apart both join the cluster of a nearer anchor."""
        a, b, c = pt("A", 0, 0), pt("B", 0, 0.005), pt("C", 0, 0.01)
        assert distance_km(a.lat, a.lng, c.lat, c.lng) > 1

        clusters = cluster_reports([b, a, c], radius_km=1, metric=DistanceMode.HAVERSINE)

        assert len(clusters) == 1
        assert member_ids(clusters[0]) == ["B", "A", "C"]

    def test_same_points_split_when_far_point_is_anchor(self):
        a, b, c = pt("A", 0, 0), pt("B", 0, 0.005), pt("C", 0, 0.01)

        clusters = cluster_reports([a, b, c], radius_km=1, metric=DistanceMode.HAVERSINE)

        assert [member_ids(cl) for cl in clusters] == [["A", "B"], ["C"]]

    def test_grouping_depends_on_input_order(self):
        a, b, c = pt("A", 0, 0), pt("B", 0, 0.008), pt("C", 0, 0.016)

        in_order = cluster_reports([a, b, c], radius_km=1)
        middle_first = cluster_reports([b, a, c], radius_km=1)

        assert [member_ids(cl) for cl in in_order] == [["A", "B"], ["C"]]
        assert [member_ids(cl) for cl in middle_first] == [["B", "A", "C"]]

    def test_membership_is_measured_from_anchor_not_last_member(self):
        # Each step is 0.006° from the previous one, but only B is near A.
        reports = [pt("A", 0, 0), pt("B", 0, 0.006), pt("C", 0, 0.012), pt("D", 0, 0.018)]
        clusters = cluster_reports(reports, radius_km=1)
        assert [member_ids(cl) for cl in clusters] == [["A", "B"], ["C", "D"]]


# ── Invariants ────────────────────────────────────────────────────────────────

class TestInvariants:

    @pytest.mark.parametrize("metric", list(DistanceMode))
    def test_every_report_in_exactly_one_cluster(self, metric):
        rng = random.Random(42)
        reports = [
            pt(i, -26.2 + rng.uniform(-0.05, 0.05), 28.0 + rng.uniform(-0.05, 0.05))
            for i in range(100)
        ]
        clusters = cluster_reports(reports, radius_km=1, metric=metric)

        seen = [m.id for c in clusters for m in c.members]
        assert sorted(seen) == list(range(100))

    def test_recomputed_from_scratch(self):
        reports = [pt(i, 0, i * 0.003) for i in range(10)]
        assert cluster_reports(reports, 1) == cluster_reports(reports, 1)

    def test_larger_radius_never_increases_cluster_count(self):
        reports = [pt(i, 0, i * 0.004) for i in range(20)]
        assert len(cluster_reports(reports, 2)) <= len(cluster_reports(reports, 1))


class TestWithinRadius:

    def test_degree_threshold_is_inclusive(self):
        assert within_radius(pt(1, 0, 0), pt(2, 0.01, 0.01), 1)

    def test_degree_threshold_checks_both_axes(self):
        assert not within_radius(pt(1, 0, 0), pt(2, 0.02, 0), 1)
        assert not within_radius(pt(1, 0, 0), pt(2, 0, 0.02), 1)

    def test_degree_threshold_scales_with_radius(self):
        assert within_radius(pt(1, 0, 0), pt(2, 0, 0.02), 2)

    def test_haversine_is_strict(self):
        assert not within_radius(pt(1, 0, 0), pt(2, 0, 0.01), 1, DistanceMode.HAVERSINE)
        assert within_radius(pt(1, 0, 0), pt(2, 0, 0.008), 1, DistanceMode.HAVERSINE)
