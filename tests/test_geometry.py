"""
Geometry tests: ray-casting containment, boundary rule, haversine distance
and coordinate validation.
"""

import math

import pytest

from app.core.errors import ValidationError
from app.utils.geometry import haversine_distance, point_in_polygon, point_in_ring, validate_coordinate

# Unit square in (lon, lat) order
SQUARE = [[(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)]]


class TestPointInPolygon:

    def test_interior_point_is_inside(self):
        assert point_in_polygon((0.5, 0.5), SQUARE)

    def test_exterior_point_is_outside(self):
        assert not point_in_polygon((1.5, 0.5), SQUARE)
        assert not point_in_polygon((0.5, -0.5), SQUARE)

    def test_west_and_south_edges_are_inside(self):
        assert point_in_polygon((0.5, 0.0), SQUARE)
        assert point_in_polygon((0.0, 0.5), SQUARE)

    def test_east_and_north_edges_are_outside(self):
        assert not point_in_polygon((0.5, 1.0), SQUARE)
        assert not point_in_polygon((1.0, 0.5), SQUARE)

    def test_corners_follow_edge_rule(self):
        assert point_in_polygon((0.0, 0.0), SQUARE)
        assert not point_in_polygon((1.0, 1.0), SQUARE)

    def test_shared_edge_belongs_to_exactly_one_square(self):
        """A point on the seam of two adjacent squares resolves to one of them."""
        east = [[(1, 0), (2, 0), (2, 1), (1, 1), (1, 0)]]
        point = (0.5, 1.0)
        assert point_in_polygon(point, SQUARE) != point_in_polygon(point, east)

    def test_hole_excludes_its_area(self):
        outer = [(0, 0), (4, 0), (4, 4), (0, 4), (0, 0)]
        hole = [(1, 1), (3, 1), (3, 3), (1, 3), (1, 1)]
        assert not point_in_polygon((2, 2), [outer, hole])
        assert point_in_polygon((0.5, 0.5), [outer, hole])

    def test_multi_part_shape(self):
        part_a = [(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)]
        part_b = [(5, 5), (6, 5), (6, 6), (5, 6), (5, 5)]
        assert point_in_polygon((5.5, 5.5), [part_a, part_b])
        assert not point_in_polygon((3, 3), [part_a, part_b])

    def test_degenerate_polygons_contain_nothing(self):
        assert not point_in_polygon((0.5, 0.5), [])
        assert not point_in_ring(0.5, 0.5, [(0, 0), (1, 1)])


class TestHaversine:

    def test_identity(self):
        assert haversine_distance((12.97, 77.59), (12.97, 77.59)) == 0

    def test_symmetry(self):
        p1, p2 = (12.97, 77.59), (13.08, 80.27)
        assert haversine_distance(p1, p2) == pytest.approx(haversine_distance(p2, p1))

    def test_one_degree_of_latitude(self):
        expected = 6371000 * math.pi / 180
        assert haversine_distance((0, 0), (1, 0)) == pytest.approx(expected)


class TestValidateCoordinate:

    def test_accepts_numeric_strings(self):
        assert validate_coordinate("12.5", "77") == (12.5, 77.0)

    @pytest.mark.parametrize("lat, lon", [(91, 0), (0, 181), (None, 0), ("abc", 0), (float("nan"), 0)])
    def test_rejects_malformed(self, lat, lon):
        with pytest.raises(ValidationError):
            validate_coordinate(lat, lon)
