"""
Map surface capability interface.

The geometry engine never talks to a mapping SDK directly: it renders,
updates and removes overlays through a MapSurface, and learns about user
edits through the mutation callback registered with `on_overlay_mutated`.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import GeocodingError, MapSurfaceError
from app.schemas.geometry import Circle, Coordinate, Polygon, Rectangle, Shape

logger = logging.getLogger(__name__)

OverlayHandle = str
MutationCallback = Callable[[Shape], None]


class OverlayStyle(BaseModel):
    stroke_color: str = settings.DEFAULT_GEOFENCE_COLOR
    fill_color: str = settings.DEFAULT_GEOFENCE_COLOR
    stroke_opacity: float = 0.8
    stroke_weight: int = 2
    fill_opacity: float = 0.2
    editable: bool = False
    draggable: bool = False

    @classmethod
    def for_color(cls, color: str, editable: bool = False) -> "OverlayStyle":
        return cls(
            stroke_color=color,
            fill_color=color,
            editable=editable,
            draggable=editable,
        )


class MapSurface(ABC):
    """What the engine needs from a map"""

    @abstractmethod
    def render_circle(self, center: Coordinate, radius_meters: float, style: OverlayStyle) -> OverlayHandle:
        ...

    @abstractmethod
    def render_polygon(self, vertices: Sequence[Coordinate], style: OverlayStyle) -> OverlayHandle:
        ...

    @abstractmethod
    def render_rectangle(self, north_east: Coordinate, south_west: Coordinate, style: OverlayStyle) -> OverlayHandle:
        ...

    @abstractmethod
    def update_overlay(self, handle: OverlayHandle, shape: Shape) -> None:
        """Programmatic write of new geometry onto an existing overlay."""

    @abstractmethod
    def on_overlay_mutated(self, handle: OverlayHandle, callback: MutationCallback) -> None:
        ...

    @abstractmethod
    def remove_overlay(self, handle: OverlayHandle) -> None:
        ...

    @abstractmethod
    def fit_bounds(self, coordinates: Sequence[Coordinate]) -> None:
        ...

    @abstractmethod
    async def reverse_geocode(self, coordinate: Coordinate) -> str:
        """Best effort; raises TransientCollaboratorError on failure."""

    def render_shape(self, shape: Shape, style: OverlayStyle) -> OverlayHandle:
        if isinstance(shape, Circle):
            return self.render_circle(shape.center, shape.radius_meters, style)
        if isinstance(shape, Polygon):
            return self.render_polygon(shape.vertices, style)
        return self.render_rectangle(shape.north_east, shape.south_west, style)


@dataclass
class OverlayRecord:
    handle: OverlayHandle
    shape: Shape
    style: OverlayStyle
    callbacks: List[MutationCallback] = field(default_factory=list)


class ServerMapSurface(MapSurface):
    """
    Server-side mirror of the overlays drawn by the browser.

    The browser reports user edits through `report_mutation`. Like the
    browser SDK, a programmatic `update_overlay` also notifies the
    registered listeners, so callers must suppress their own echoes.
    """

    def __init__(self, surface_id: str, geocoder=None):
        self.surface_id = surface_id
        self.geocoder = geocoder
        self.overlays: Dict[OverlayHandle, OverlayRecord] = {}
        self.bounds: List[Coordinate] = []

    def _add(self, shape: Shape, style: OverlayStyle) -> OverlayHandle:
        handle = uuid.uuid4().hex
        self.overlays[handle] = OverlayRecord(handle=handle, shape=shape, style=style)
        logger.debug(f"[{self.surface_id}] rendered {shape.kind} overlay {handle}")
        return handle

    def render_circle(self, center, radius_meters, style):
        return self._add(Circle(center=center, radius_meters=radius_meters), style)

    def render_polygon(self, vertices, style):
        return self._add(Polygon(vertices=tuple(vertices)), style)

    def render_rectangle(self, north_east, south_west, style):
        return self._add(Rectangle(north_east=north_east, south_west=south_west), style)

    def _record(self, handle: OverlayHandle) -> OverlayRecord:
        record = self.overlays.get(handle)
        if record is None:
            raise MapSurfaceError(f"Unknown overlay {handle} on surface {self.surface_id}")
        return record

    def _notify(self, record: OverlayRecord) -> None:
        for callback in list(record.callbacks):
            callback(record.shape)

    def update_overlay(self, handle, shape):
        record = self._record(handle)
        record.shape = shape
        self._notify(record)

    def report_mutation(self, handle: OverlayHandle, shape: Shape) -> None:
        """User-originated edit reported by the browser."""
        record = self._record(handle)
        record.shape = shape
        self._notify(record)

    def on_overlay_mutated(self, handle, callback):
        self._record(handle).callbacks.append(callback)

    def remove_overlay(self, handle):
        record = self.overlays.pop(handle, None)
        if record is None:
            logger.debug(f"[{self.surface_id}] overlay {handle} already removed")
            return
        record.callbacks.clear()

    def fit_bounds(self, coordinates):
        self.bounds = list(coordinates)

    async def reverse_geocode(self, coordinate: Coordinate) -> str:
        if self.geocoder is None:
            raise GeocodingError("No geocoder configured")
        result = await self.geocoder.reverse_geocode(coordinate)
        return result.address

    def get_overlay(self, handle: OverlayHandle) -> Optional[OverlayRecord]:
        return self.overlays.get(handle)
