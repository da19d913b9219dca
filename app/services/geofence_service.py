"""
Geofence geometry service: validation, metrics, centroid, bounds and containment
"""
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from app.core.errors import ErrorCode, ShapeValidationError
from app.schemas.geometry import Circle, Coordinate, Polygon, Rectangle, Shape, ShapeMetrics

# Earth's radius in meters
EARTH_RADIUS_METERS = 6371000
# Meters per degree at the equator, used for the planar area estimate
METERS_PER_DEGREE = 111320


class GeofenceService:
    """Service for geofence geometry calculations"""

    @staticmethod
    def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Calculate the great circle distance between two points
        on the earth (specified in decimal degrees).
        Returns distance in meters.
        """
        # Convert to radians
        lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

        # Haversine formula
        dlat = lat2 - lat1
        dlon = lon2 - lon1
        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_METERS * c

    @staticmethod
    def point_in_polygon(lat: float, lon: float, polygon: Sequence[Coordinate]) -> bool:
        """
        Check if a point is inside a polygon using ray casting algorithm.
        """
        n = len(polygon)
        inside = False

        j = n - 1
        for i in range(n):
            xi, yi = polygon[i].lng, polygon[i].lat
            xj, yj = polygon[j].lng, polygon[j].lat

            if ((yi > lat) != (yj > lat)) and \
               (lon < (xj - xi) * (lat - yi) / (yj - yi) + xi):
                inside = not inside
            j = i

        return inside

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _coordinates_of(shape: Shape) -> Tuple[Coordinate, ...]:
        if isinstance(shape, Circle):
            return (shape.center,)
        if isinstance(shape, Rectangle):
            return (shape.north_east, shape.south_west)
        return tuple(shape.vertices)

    def validate_shape(self, shape: Shape) -> None:
        """
        Raise ShapeValidationError if the shape cannot be committed.
        Checks run in order: radius, vertex count, coordinate range.
        """
        if isinstance(shape, Circle):
            radius = shape.radius_meters
            if not math.isfinite(radius) or radius <= 0:
                raise ShapeValidationError(
                    ErrorCode.INVALID_RADIUS,
                    f"Circle radius must be greater than 0, got {radius}"
                )
        elif isinstance(shape, Polygon) and len(shape.vertices) < 3:
            raise ShapeValidationError(
                ErrorCode.INSUFFICIENT_VERTICES,
                f"Polygon requires at least 3 vertices, got {len(shape.vertices)}"
            )

        for coordinate in self._coordinates_of(shape):
            lat, lng = coordinate.lat, coordinate.lng
            if not (math.isfinite(lat) and math.isfinite(lng)) \
                    or not -90 <= lat <= 90 or not -180 <= lng <= 180:
                raise ShapeValidationError(
                    ErrorCode.COORDINATE_OUT_OF_RANGE,
                    f"Coordinate out of range: ({lat}, {lng})"
                )

    def is_valid(self, shape: Shape) -> bool:
        try:
            self.validate_shape(shape)
        except ShapeValidationError:
            return False
        return True

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def polygon_perimeter(self, vertices: Sequence[Coordinate]) -> float:
        """Sum of haversine edge lengths, wrapping last -> first."""
        perimeter = 0.0
        n = len(vertices)
        for i in range(n):
            current = vertices[i]
            following = vertices[(i + 1) % n]
            perimeter += self.haversine_distance(
                current.lat, current.lng, following.lat, following.lng
            )
        return perimeter

    @staticmethod
    def polygon_area(vertices: Sequence[Coordinate]) -> float:
        """
        Planar shoelace area over raw (lat, lng) degrees, scaled by
        METERS_PER_DEGREE squared. No latitude correction is applied, so the
        result is an estimate that degrades away from the equator.
        """
        n = len(vertices)
        if n < 3:
            return 0.0

        area = 0.0
        for i in range(n):
            j = (i + 1) % n
            area += vertices[i].lat * vertices[j].lng
            area -= vertices[j].lat * vertices[i].lng
        area = abs(area) / 2

        return area * METERS_PER_DEGREE * METERS_PER_DEGREE

    def compute_metrics(self, shape: Shape) -> ShapeMetrics:
        """Perimeter (m) and area (m²) of a shape."""
        if isinstance(shape, Circle):
            radius = max(shape.radius_meters, 0.0)
            return ShapeMetrics(
                perimeter_meters=2 * math.pi * radius,
                area_square_meters=math.pi * radius * radius,
            )

        vertices = shape.corners() if isinstance(shape, Rectangle) else shape.vertices
        return ShapeMetrics(
            perimeter_meters=self.polygon_perimeter(vertices),
            area_square_meters=self.polygon_area(vertices),
        )

    # ------------------------------------------------------------------
    # Centroid, bounds and containment
    # ------------------------------------------------------------------

    @staticmethod
    def shape_center(shape: Shape) -> Optional[Coordinate]:
        """Circle center, rectangle midpoint or polygon vertex average."""
        if isinstance(shape, Circle):
            return shape.center

        if isinstance(shape, Rectangle):
            ne, sw = shape.north_east, shape.south_west
            return Coordinate(lat=(ne.lat + sw.lat) / 2, lng=(ne.lng + sw.lng) / 2)

        if not shape.vertices:
            return None
        n = len(shape.vertices)
        return Coordinate(
            lat=sum(v.lat for v in shape.vertices) / n,
            lng=sum(v.lng for v in shape.vertices) / n,
        )

    @staticmethod
    def bounds_coordinates(shape: Shape) -> List[Coordinate]:
        """Points that must be visible to frame the shape on a map."""
        if isinstance(shape, Circle):
            # Rough conversion, good enough for framing
            offset = shape.radius_meters / METERS_PER_DEGREE
            center = shape.center
            return [
                Coordinate(lat=center.lat + offset, lng=center.lng + offset),
                Coordinate(lat=center.lat - offset, lng=center.lng - offset),
            ]
        if isinstance(shape, Rectangle):
            return [shape.north_east, shape.south_west]
        return list(shape.vertices)

    def collect_bounds(self, shapes: Iterable[Shape]) -> List[Coordinate]:
        coordinates: List[Coordinate] = []
        for shape in shapes:
            coordinates.extend(self.bounds_coordinates(shape))
        return coordinates

    def check_point_in_shape(
        self,
        shape: Shape,
        latitude: float,
        longitude: float
    ) -> Tuple[bool, Optional[float]]:
        """
        Check if a point is within a shape.
        Returns (is_inside, distance_from_center); distance only for circles.
        """
        if isinstance(shape, Circle):
            distance = self.haversine_distance(
                latitude, longitude,
                shape.center.lat, shape.center.lng
            )
            return distance <= shape.radius_meters, distance

        if isinstance(shape, Rectangle):
            ne, sw = shape.north_east, shape.south_west
            inside = sw.lat <= latitude <= ne.lat and sw.lng <= longitude <= ne.lng
            return inside, None

        if len(shape.vertices) < 3:
            return False, None
        return self.point_in_polygon(latitude, longitude, shape.vertices), None


geofence_service = GeofenceService()
