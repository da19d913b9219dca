"""
Unit tests for the geometry service: metrics, validation, centroid, bounds
and point containment.

Run with: python -m pytest tests/test_geofence_service.py -v
"""
import math

import pytest

from app.core.errors import ErrorCode, ShapeValidationError
from app.schemas.geometry import Circle, Coordinate, Polygon, Rectangle
from app.services.geofence_service import METERS_PER_DEGREE, geofence_service
from tests.conftest import SQUARE


def circle(radius, lat=0.0, lng=0.0):
    return Circle(center=Coordinate(lat=lat, lng=lng), radius_meters=radius)


class TestHaversine:
    def test_zero_distance(self):
        assert geofence_service.haversine_distance(28.6, 77.2, 28.6, 77.2) == 0

    def test_one_thousandth_degree_along_meridian(self):
        expected = 6371000 * math.radians(0.001)
        distance = geofence_service.haversine_distance(0, 0, 0.001, 0)
        assert distance == pytest.approx(expected, rel=1e-9)

    def test_symmetric(self):
        a = geofence_service.haversine_distance(28.6, 77.2, 19.07, 72.87)
        b = geofence_service.haversine_distance(19.07, 72.87, 28.6, 77.2)
        assert a == pytest.approx(b)


class TestCircleMetrics:
    def test_radius_1000(self):
        metrics = geofence_service.compute_metrics(circle(1000))
        assert metrics.perimeter_meters == pytest.approx(6283.19, abs=0.01)
        assert metrics.area_square_meters == pytest.approx(3141592.65, abs=0.01)

    def test_metrics_ignore_center(self):
        near_equator = geofence_service.compute_metrics(circle(250))
        far_north = geofence_service.compute_metrics(circle(250, lat=70, lng=20))
        assert near_equator == far_north


class TestPolygonMetrics:
    def test_small_square_area(self):
        metrics = geofence_service.compute_metrics(Polygon(vertices=SQUARE))
        assert metrics.area_square_meters == pytest.approx(12392, rel=0.05)

    def test_small_square_perimeter(self):
        metrics = geofence_service.compute_metrics(Polygon(vertices=SQUARE))
        edge = 6371000 * math.radians(0.001)
        assert metrics.perimeter_meters == pytest.approx(4 * edge, rel=1e-3)

    def test_area_is_independent_of_winding(self):
        forward = geofence_service.polygon_area(SQUARE)
        backward = geofence_service.polygon_area(tuple(reversed(SQUARE)))
        assert forward == pytest.approx(backward)
        assert forward > 0

    def test_metrics_are_independent_of_vertex_order(self):
        pentagon = (
            Coordinate(lat=28.60, lng=77.20),
            Coordinate(lat=28.61, lng=77.23),
            Coordinate(lat=28.63, lng=77.22),
            Coordinate(lat=28.64, lng=77.19),
            Coordinate(lat=28.62, lng=77.17),
        )
        forward = geofence_service.compute_metrics(Polygon(vertices=pentagon))
        backward = geofence_service.compute_metrics(Polygon(vertices=tuple(reversed(pentagon))))
        assert backward.perimeter_meters == pytest.approx(forward.perimeter_meters)
        assert backward.area_square_meters == pytest.approx(forward.area_square_meters)
        assert geofence_service.polygon_perimeter(tuple(reversed(SQUARE))) == pytest.approx(
            geofence_service.polygon_perimeter(SQUARE)
        )

    def test_perimeter_wraps_last_vertex_to_first(self):
        triangle = (SQUARE[0], SQUARE[1], SQUARE[2])
        edges = (
            geofence_service.haversine_distance(0, 0, 0, 0.001)
            + geofence_service.haversine_distance(0, 0.001, 0.001, 0.001)
            + geofence_service.haversine_distance(0.001, 0.001, 0, 0)
        )
        assert geofence_service.polygon_perimeter(triangle) == pytest.approx(edges)

    def test_two_vertex_polygon_has_zero_area(self):
        degenerate = Polygon(vertices=SQUARE[:2])
        metrics = geofence_service.compute_metrics(degenerate)
        assert metrics.area_square_meters == 0.0
        assert metrics.perimeter_meters > 0

    def test_empty_polygon(self):
        metrics = geofence_service.compute_metrics(Polygon(vertices=()))
        assert metrics.perimeter_meters == 0.0
        assert metrics.area_square_meters == 0.0

    def test_area_uses_equatorial_degree_length(self):
        one_degree = (
            Coordinate(lat=0, lng=0),
            Coordinate(lat=0, lng=1),
            Coordinate(lat=1, lng=1),
            Coordinate(lat=1, lng=0),
        )
        assert geofence_service.polygon_area(one_degree) == pytest.approx(METERS_PER_DEGREE ** 2)

    def test_rectangle_uses_its_four_corners(self):
        rectangle = Rectangle(
            north_east=Coordinate(lat=0.001, lng=0.001),
            south_west=Coordinate(lat=0.0, lng=0.0),
        )
        as_rectangle = geofence_service.compute_metrics(rectangle)
        as_polygon = geofence_service.compute_metrics(Polygon(vertices=SQUARE))
        assert as_rectangle.area_square_meters == pytest.approx(as_polygon.area_square_meters)
        assert as_rectangle.perimeter_meters == pytest.approx(as_polygon.perimeter_meters)


class TestValidation:
    @pytest.mark.parametrize("radius", [0, -5, float("nan")])
    def test_bad_radius(self, radius):
        with pytest.raises(ShapeValidationError) as exc_info:
            geofence_service.validate_shape(circle(radius))
        assert exc_info.value.code == ErrorCode.INVALID_RADIUS

    def test_too_few_vertices(self):
        with pytest.raises(ShapeValidationError) as exc_info:
            geofence_service.validate_shape(Polygon(vertices=SQUARE[:2]))
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_VERTICES

    @pytest.mark.parametrize("lat,lng", [(91, 0), (-90.5, 0), (0, 181), (0, -180.01)])
    def test_out_of_range(self, lat, lng):
        with pytest.raises(ShapeValidationError) as exc_info:
            geofence_service.validate_shape(circle(100, lat=lat, lng=lng))
        assert exc_info.value.code == ErrorCode.COORDINATE_OUT_OF_RANGE

    def test_radius_checked_before_range(self):
        with pytest.raises(ShapeValidationError) as exc_info:
            geofence_service.validate_shape(circle(0, lat=95))
        assert exc_info.value.code == ErrorCode.INVALID_RADIUS

    def test_vertex_count_checked_before_range(self):
        bad = Polygon(vertices=(Coordinate(lat=100, lng=0), Coordinate(lat=0, lng=0)))
        with pytest.raises(ShapeValidationError) as exc_info:
            geofence_service.validate_shape(bad)
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_VERTICES

    def test_boundary_values_are_valid(self):
        assert geofence_service.is_valid(circle(1, lat=90, lng=-180))
        assert geofence_service.is_valid(Polygon(vertices=SQUARE))

    def test_is_valid_false(self):
        assert not geofence_service.is_valid(circle(-1))


class TestCenterAndBounds:
    def test_circle_center(self):
        assert geofence_service.shape_center(circle(10, 28.6, 77.2)) == Coordinate(lat=28.6, lng=77.2)

    def test_polygon_center_is_vertex_average(self):
        center = geofence_service.shape_center(Polygon(vertices=SQUARE))
        assert center.lat == pytest.approx(0.0005)
        assert center.lng == pytest.approx(0.0005)

    def test_empty_polygon_has_no_center(self):
        assert geofence_service.shape_center(Polygon(vertices=())) is None

    def test_circle_bounds_extend_by_radius(self):
        bounds = geofence_service.bounds_coordinates(circle(METERS_PER_DEGREE))
        assert bounds[0] == Coordinate(lat=1, lng=1)
        assert bounds[1] == Coordinate(lat=-1, lng=-1)

    def test_collect_bounds(self):
        coordinates = geofence_service.collect_bounds([circle(10), Polygon(vertices=SQUARE)])
        assert len(coordinates) == 2 + len(SQUARE)


class TestContainment:
    def test_point_inside_circle(self):
        inside, distance = geofence_service.check_point_in_shape(circle(500, 28.6, 77.2), 28.601, 77.2)
        assert inside
        assert distance == pytest.approx(111.19, abs=0.1)

    def test_point_outside_circle(self):
        inside, distance = geofence_service.check_point_in_shape(circle(50, 28.6, 77.2), 28.601, 77.2)
        assert not inside
        assert distance > 50

    def test_polygon(self):
        square = Polygon(vertices=SQUARE)
        assert geofence_service.check_point_in_shape(square, 0.0005, 0.0005) == (True, None)
        assert geofence_service.check_point_in_shape(square, 0.002, 0.0005) == (False, None)

    def test_degenerate_polygon_contains_nothing(self):
        assert geofence_service.check_point_in_shape(Polygon(vertices=SQUARE[:2]), 0, 0) == (False, None)

    def test_rectangle(self):
        rectangle = Rectangle(
            north_east=Coordinate(lat=1, lng=1),
            south_west=Coordinate(lat=-1, lng=-1),
        )
        assert geofence_service.check_point_in_shape(rectangle, 0.5, -0.5)[0]
        assert not geofence_service.check_point_in_shape(rectangle, 1.5, 0)[0]
