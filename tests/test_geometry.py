"""
test_geometry.py — Vertex-decimation simplifier.

Run:
    pytest tests/test_geometry.py -v
"""

import pytest

from wardwatch.services.geometry import (
    GeometryWarning,
    count_vertices,
    simplify_geometry,
    simplify_ring,
    try_simplify_ring,
)


def ring_of(n: int) -> list[list[float]]:
    return [[float(i), float(i) / 2] for i in range(n)]


# ── simplify_ring ─────────────────────────────────────────────────────────────

class TestSimplifyRing:

    @pytest.mark.parametrize("size", [3, 7, 10, 101, 1000])
    @pytest.mark.parametrize("tolerance", [0.01, 0.1, 0.33, 0.5, 0.99])
    def test_never_longer_and_keeps_last_vertex(self, size, tolerance):
        ring = ring_of(size)
        simplified = simplify_ring(ring, tolerance)
        assert len(simplified) <= len(ring)
        assert simplified[-1] == ring[-1]

    def test_keeps_every_step_th_vertex(self):
        ring = ring_of(100)
        simplified = simplify_ring(ring, 0.1)  # step 10
        assert simplified[:10] == [ring[i] for i in range(0, 100, 10)]
        assert simplified[-1] == ring[99]
        assert len(simplified) == 11

    def test_last_vertex_not_duplicated_when_on_step(self):
        ring = ring_of(11)
        simplified = simplify_ring(ring, 0.1)  # step 1 → everything kept
        assert simplified == ring

        ring = ring_of(21)
        simplified = simplify_ring(ring, 0.1)  # step 2, index 20 kept naturally
        assert simplified.count(ring[-1]) == 1

    def test_zero_tolerance_returns_ring_unchanged(self):
        ring = ring_of(50)
        assert simplify_ring(ring, 0) is ring

    def test_negative_tolerance_returns_ring_unchanged(self):
        ring = ring_of(50)
        assert simplify_ring(ring, -0.5) is ring

    @pytest.mark.parametrize("size", [0, 1, 2])
    def test_degenerate_rings_unchanged(self, size):
        ring = ring_of(size)
        assert simplify_ring(ring, 0.5) is ring

    def test_small_tolerance_keeps_all_vertices(self):
        ring = ring_of(50)
        assert simplify_ring(ring, 0.001) == ring

    def test_malformed_ring_returned_with_warning(self):
        ring, warning = try_simplify_ring(None, 0.5)
        assert ring is None
        assert isinstance(warning, GeometryWarning)

    def test_nan_tolerance_does_not_raise(self):
        ring = ring_of(10)
        simplified, warning = try_simplify_ring(ring, float("nan"))
        assert simplified is ring
        assert warning is not None

    def test_simplify_ring_logs_instead_of_raising(self, caplog):
        assert simplify_ring(42, 0.5) == 42
        assert "Geometry warning" in caplog.text


# ── simplify_geometry ─────────────────────────────────────────────────────────

class TestSimplifyGeometry:

    def test_polygon_keeps_outer_ring_only(self):
        outer = ring_of(100)
        hole = ring_of(10)
        geometry = {"type": "Polygon", "coordinates": [outer, hole]}

        simplified, warnings = simplify_geometry(geometry, 0.1)

        assert warnings == []
        assert simplified["type"] == "Polygon"
        assert len(simplified["coordinates"]) == 1
        assert len(simplified["coordinates"][0]) == 11
        # Input left untouched
        assert len(geometry["coordinates"]) == 2

    def test_multipolygon_simplifies_each_outer_ring(self):
        geometry = {
            "type": "MultiPolygon",
            "coordinates": [[ring_of(100), ring_of(5)], [ring_of(50)]],
        }
        simplified, warnings = simplify_geometry(geometry, 0.1)

        assert warnings == []
        assert [len(p) for p in simplified["coordinates"]] == [1, 1]
        assert len(simplified["coordinates"][0][0]) == 11
        assert len(simplified["coordinates"][1][0]) == 11  # step 5 → 0..45, plus last

    def test_zero_tolerance_passes_geometry_through(self):
        geometry = {"type": "Polygon", "coordinates": [ring_of(20), ring_of(5)]}
        simplified, warnings = simplify_geometry(geometry, 0)
        assert simplified is geometry
        assert warnings == []

    def test_other_types_pass_through_with_warning(self):
        geometry = {"type": "LineString", "coordinates": ring_of(20)}
        simplified, warnings = simplify_geometry(geometry, 0.5)
        assert simplified is geometry
        assert len(warnings) == 1
        assert "LineString" in warnings[0].message

    def test_empty_polygon_coordinates_warn(self):
        geometry = {"type": "Polygon", "coordinates": []}
        simplified, warnings = simplify_geometry(geometry, 0.5)
        assert simplified is geometry
        assert len(warnings) == 1

    def test_missing_geometry_warns(self):
        simplified, warnings = simplify_geometry(None, 0.5)
        assert simplified is None
        assert len(warnings) == 1


class TestCountVertices:

    def test_polygon(self):
        assert count_vertices({"type": "Polygon", "coordinates": [ring_of(5), ring_of(3)]}) == 8

    def test_multipolygon(self):
        geometry = {"type": "MultiPolygon", "coordinates": [[ring_of(5)], [ring_of(4)]]}
        assert count_vertices(geometry) == 9

    def test_unsupported(self):
        assert count_vertices({"type": "Point", "coordinates": [0, 0]}) == 0
        assert count_vertices(None) == 0
