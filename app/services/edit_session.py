"""
Edit synchronization for a geofence shape drawn on a map surface.

Three representations are kept consistent while the user edits: the live
overlay, the shape held by the session, and the numeric form fields.
Exactly one direction is active at a time:

    EDITING      overlay -> shape -> form   (user dragged/resized the overlay)
    FORM_DRIVEN  form -> shape -> overlay   (user typed a value)

Overlay writes made on behalf of the form are applied with mutation
callbacks suppressed, so they never come back as overlay mutations.
"""
import logging
import math
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from app.core.config import settings
from app.core.errors import (
    ErrorCode, FormValidationError, GeofenceValidationError, GeometryDecodeError, GeozoneError,
    PersistenceError, ShapeValidationError, TransientCollaboratorError,
)
from app.schemas.geofence import (
    GEOMETRY_FIELDS, FormField, Geofence, GeofenceForm, Visibility,
)
from app.schemas.geometry import (
    Circle, Coordinate, GeometryPayload, Polygon, Rectangle, Shape, ShapeMetrics, ShapeType,
    shape_type_of,
)
from app.services.geocoding_service import parse_formatted_address
from app.services.geofence_registry import GeofenceRegistry
from app.services.geofence_service import geofence_service
from app.services.geometry_codec import decode_geometry
from app.services.map_surface import MapSurface, OverlayHandle, OverlayStyle, ServerMapSurface

logger = logging.getLogger(__name__)

SHAPE_CLASSES = (Circle, Polygon, Rectangle)


class SessionState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    EDITING = "editing"
    FORM_DRIVEN = "form_driven"
    COMMITTING = "committing"


EDITABLE_STATES = frozenset({SessionState.DRAWING, SessionState.EDITING, SessionState.FORM_DRIVEN})


def parse_number(value: Any) -> float:
    """Parse a numeric form value; NaN, infinities and non-numbers are rejected."""
    if isinstance(value, bool):
        raise FormValidationError(ErrorCode.NON_NUMERIC_INPUT, f"Not a number: {value!r}")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise FormValidationError(ErrorCode.NON_NUMERIC_INPUT, f"Not a number: {value!r}")
    if not math.isfinite(number):
        raise FormValidationError(ErrorCode.NON_NUMERIC_INPUT, f"Not a finite number: {value!r}")
    return number


class GeofenceEditSession:
    """Drawing/editing session for a single geofence on one map surface"""

    def __init__(
        self,
        map_surface: MapSurface,
        registry: GeofenceRegistry,
        default_center: Optional[Coordinate] = None,
    ):
        self.map_surface = map_surface
        self.registry = registry
        self.default_center = default_center or Coordinate(
            lat=settings.DEFAULT_CENTER_LAT, lng=settings.DEFAULT_CENTER_LNG
        )
        self.last_error: Optional[GeozoneError] = None

        self._state = SessionState.IDLE
        self._shape: Optional[Shape] = None
        self._metrics = ShapeMetrics()
        self._form = GeofenceForm()
        self._overlay_handle: Optional[OverlayHandle] = None
        self._editing: Optional[Geofence] = None
        self._suppress_overlay_events = False
        # Bumped on every reset; a commit whose session was reset while saving is abandoned
        self._generation = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def shape(self) -> Optional[Shape]:
        return self._shape

    @property
    def metrics(self) -> ShapeMetrics:
        return self._metrics

    @property
    def form(self) -> GeofenceForm:
        return self._form.model_copy(deep=True)

    @property
    def overlay_handle(self) -> Optional[OverlayHandle]:
        return self._overlay_handle

    @property
    def editing_geofence_id(self) -> Optional[str]:
        return self._editing.id if self._editing else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, state: SessionState) -> None:
        if state != self._state:
            logger.debug(f"Edit session {self._state.value} -> {state.value}")
        self._state = state

    def _fail(self, error: GeozoneError) -> GeozoneError:
        self.last_error = error
        logger.debug(f"Edit session rejected input: {error.message}")
        return error

    def _require_editable(self) -> Optional[GeozoneError]:
        if self._state not in EDITABLE_STATES:
            return self._fail(FormValidationError(
                ErrorCode.INVALID_STATE,
                f"No shape is being edited (state: {self._state.value})"
            ))
        return None

    def _default_shape(self, shape_type: ShapeType, center: Coordinate) -> Shape:
        if shape_type == ShapeType.CIRCLE:
            return Circle(center=center, radius_meters=settings.DEFAULT_CIRCLE_RADIUS_METERS)
        d = settings.DEFAULT_POLYGON_OFFSET_DEGREES
        return Polygon(vertices=(
            Coordinate(lat=center.lat + d, lng=center.lng + d),
            Coordinate(lat=center.lat + d, lng=center.lng - d),
            Coordinate(lat=center.lat - d, lng=center.lng - d),
            Coordinate(lat=center.lat - d, lng=center.lng + d),
        ))

    def _set_shape(self, shape: Shape) -> None:
        """Store the shape and recompute metrics before anything reads them."""
        self._shape = shape
        self._metrics = geofence_service.compute_metrics(shape)
        self._form.perimeter_meters = self._metrics.perimeter_meters
        self._form.area_square_meters = self._metrics.area_square_meters

    def _push_shape_to_form(self) -> None:
        shape = self._shape
        if isinstance(shape, Circle):
            self._form.center_lat = shape.center.lat
            self._form.center_lng = shape.center.lng
            self._form.radius = shape.radius_meters
            self._form.vertices = []
        elif isinstance(shape, Polygon):
            self._form.center_lat = None
            self._form.center_lng = None
            self._form.radius = None
            self._form.vertices = list(shape.vertices)

    @contextmanager
    def _overlay_events_suppressed(self):
        self._suppress_overlay_events = True
        try:
            yield
        finally:
            self._suppress_overlay_events = False

    def _push_shape_to_overlay(self) -> None:
        if self._overlay_handle is None:
            return
        with self._overlay_events_suppressed():
            self.map_surface.update_overlay(self._overlay_handle, self._shape)

    def _render_overlay(self) -> None:
        style = OverlayStyle.for_color(self._form.color, editable=True)
        self._overlay_handle = self.map_surface.render_shape(self._shape, style)
        self.map_surface.on_overlay_mutated(self._overlay_handle, self._on_overlay_mutated)
        self.map_surface.fit_bounds(geofence_service.bounds_coordinates(self._shape))

    def _release_overlay(self) -> None:
        if self._overlay_handle is not None:
            self.map_surface.remove_overlay(self._overlay_handle)
            self._overlay_handle = None

    def _reset(self) -> None:
        self._shape = None
        self._metrics = ShapeMetrics()
        self._form = GeofenceForm()
        self._editing = None
        self.registry.active_geofence_id = None
        self.last_error = None
        self._generation += 1

    def _on_overlay_mutated(self, shape: Shape) -> None:
        if self._suppress_overlay_events:
            logger.debug("Ignoring overlay echo of a form-driven update")
            return
        self.apply_overlay_mutation(shape)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_drawing(
        self,
        shape_type: Union[ShapeType, str],
        center: Optional[Coordinate] = None
    ) -> Optional[GeozoneError]:
        if self._state != SessionState.IDLE:
            return self._fail(FormValidationError(
                ErrorCode.INVALID_STATE,
                f"Cannot start drawing while {self._state.value}"
            ))
        try:
            shape_type = ShapeType(shape_type)
        except ValueError:
            return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, f"Unknown shape type: {shape_type!r}"))
        if shape_type == ShapeType.RECTANGLE:
            return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, "Rectangles cannot be drawn"))

        self._reset()
        self._set_shape(self._default_shape(shape_type, center or self.default_center))
        self._push_shape_to_form()
        self._render_overlay()
        self._transition(SessionState.DRAWING)
        return None

    def begin_edit(self, geofence: Geofence) -> Optional[GeozoneError]:
        """Load an existing geofence into the session for editing."""
        if self._state != SessionState.IDLE:
            return self._fail(FormValidationError(
                ErrorCode.INVALID_STATE,
                f"Cannot edit while {self._state.value}"
            ))
        if isinstance(geofence.shape, Rectangle):
            return self._fail(FormValidationError(
                ErrorCode.INVALID_FIELD,
                "Legacy rectangle geofences are not editable"
            ))

        self._reset()
        self._editing = geofence
        self.registry.active_geofence_id = geofence.id
        self._form = GeofenceForm(
            name=geofence.name,
            phone_number=geofence.phone_number,
            visibility=geofence.visibility,
            color=geofence.color,
            final_address=geofence.final_address,
            address=geofence.address,
        )
        self._set_shape(geofence.shape)
        self._push_shape_to_form()
        self.registry.release_overlay(geofence.id)
        self._render_overlay()
        self._transition(SessionState.EDITING)
        return None

    def apply_overlay_mutation(
        self,
        raw_geometry: Union[Shape, GeometryPayload, Mapping[str, Any]]
    ) -> Optional[GeozoneError]:
        """overlay -> shape -> form. Never writes back to the overlay."""
        if self._suppress_overlay_events:
            return None
        error = self._require_editable()
        if error:
            return error

        if isinstance(raw_geometry, SHAPE_CLASSES):
            shape = raw_geometry
        else:
            try:
                # Vertex deletion may leave fewer than 3 points while editing
                shape = decode_geometry(raw_geometry, allow_degenerate=True, radius_fallback=False)
            except GeometryDecodeError as e:
                return self._fail(e)

        if isinstance(shape, Circle) and not shape.radius_meters > 0:
            return self._fail(ShapeValidationError(
                ErrorCode.INVALID_RADIUS,
                f"Overlay reported a circle with radius {shape.radius_meters}"
            ))
        if shape.kind != self._shape.kind:
            return self._fail(FormValidationError(
                ErrorCode.INVALID_FIELD,
                f"Overlay reported a {shape.kind} while editing a {self._shape.kind}"
            ))
        if shape == self._shape:
            return None

        self._set_shape(shape)
        self._push_shape_to_form()
        self.last_error = None
        self._transition(SessionState.EDITING)
        return None

    def _fold_form_value(self, field: FormField, number: float, index: Optional[int]) -> Shape:
        shape = self._shape

        if field in (FormField.CENTER_LAT, FormField.CENTER_LNG, FormField.RADIUS):
            if not isinstance(shape, Circle):
                raise FormValidationError(ErrorCode.INVALID_FIELD, f"'{field.value}' only applies to circles")
            if field == FormField.RADIUS:
                if number <= 0:
                    raise ShapeValidationError(ErrorCode.INVALID_RADIUS, "Radius must be greater than 0")
                return shape.model_copy(update={"radius_meters": number})
            if field == FormField.CENTER_LAT:
                center = Coordinate(lat=number, lng=shape.center.lng)
            else:
                center = Coordinate(lat=shape.center.lat, lng=number)
            self._check_range(center)
            return shape.model_copy(update={"center": center})

        if not isinstance(shape, Polygon):
            raise FormValidationError(ErrorCode.INVALID_FIELD, f"'{field.value}' only applies to polygons")
        if index is None or not 0 <= index < len(shape.vertices):
            raise FormValidationError(ErrorCode.INVALID_FIELD, f"No vertex at index {index}")

        vertices = list(shape.vertices)
        vertex = vertices[index]
        if field == FormField.VERTEX_LAT:
            vertices[index] = Coordinate(lat=number, lng=vertex.lng)
        else:
            vertices[index] = Coordinate(lat=vertex.lat, lng=number)
        self._check_range(vertices[index])
        return Polygon(vertices=tuple(vertices))

    @staticmethod
    def _check_range(coordinate: Coordinate) -> None:
        if not -90 <= coordinate.lat <= 90 or not -180 <= coordinate.lng <= 180:
            raise ShapeValidationError(
                ErrorCode.COORDINATE_OUT_OF_RANGE,
                f"Coordinate out of range: ({coordinate.lat}, {coordinate.lng})"
            )

    def _apply_metadata(self, field: FormField, value: Any) -> Optional[GeozoneError]:
        if field == FormField.VISIBILITY:
            try:
                self._form.visibility = Visibility(value)
            except ValueError:
                return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, f"Unknown visibility: {value!r}"))
            return None

        text = "" if value is None else str(value)
        if field == FormField.NAME:
            self._form.name = text
        elif field == FormField.PHONE_NUMBER:
            self._form.phone_number = text
        elif field == FormField.COLOR:
            self._form.color = text or settings.DEFAULT_GEOFENCE_COLOR
        elif field == FormField.FINAL_ADDRESS:
            self._form.final_address = text
            self._form.address = parse_formatted_address(text)
        return None

    def apply_form_edit(
        self,
        field: Union[FormField, str],
        value: Any,
        index: Optional[int] = None
    ) -> Optional[GeozoneError]:
        """
        form -> shape -> overlay. Rejected input leaves the form, the shape
        and the overlay untouched.
        """
        error = self._require_editable()
        if error:
            return error
        try:
            field = FormField(field)
        except ValueError:
            return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, f"Unknown form field: {field!r}"))

        if field not in GEOMETRY_FIELDS:
            return self._apply_metadata(field, value)

        try:
            number = parse_number(value)
            shape = self._fold_form_value(field, number, index)
        except GeofenceValidationError as e:
            return self._fail(e)

        self.last_error = None
        if shape == self._shape:
            return None

        self._set_shape(shape)
        self._push_shape_to_form()
        self._transition(SessionState.FORM_DRIVEN)
        self._push_shape_to_overlay()
        return None

    def switch_shape_type(self, shape_type: Union[ShapeType, str]) -> Optional[GeozoneError]:
        """
        Replace the overlay with a default shape of the other type, centered on
        the current shape. Vertices are not converted.
        """
        error = self._require_editable()
        if error:
            return error
        try:
            shape_type = ShapeType(shape_type)
        except ValueError:
            return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, f"Unknown shape type: {shape_type!r}"))
        if shape_type == ShapeType.RECTANGLE:
            return self._fail(FormValidationError(ErrorCode.INVALID_FIELD, "Rectangles cannot be drawn"))
        if shape_type == shape_type_of(self._shape):
            return None

        center = geofence_service.shape_center(self._shape) or self.default_center
        self._release_overlay()
        self._set_shape(self._default_shape(shape_type, center))
        self._push_shape_to_form()
        self._render_overlay()
        self.last_error = None
        self._transition(SessionState.DRAWING)
        return None

    async def refresh_address(self) -> Optional[str]:
        """Best-effort reverse geocode of the shape center into the form."""
        if self._shape is None:
            return None
        center = geofence_service.shape_center(self._shape)
        if center is None:
            return None
        try:
            address = await self.map_surface.reverse_geocode(center)
        except TransientCollaboratorError as e:
            logger.warning(f"Reverse geocoding failed, leaving address empty: {e.message}")
            return None

        self._form.final_address = address
        self._form.address = parse_formatted_address(address)
        return address

    def _check_metadata(self) -> None:
        missing = [
            label for label, value in (("name", self._form.name), ("phone number", self._form.phone_number))
            if not value or not value.strip()
        ]
        if missing:
            raise FormValidationError(
                ErrorCode.MISSING_METADATA,
                f"Please fill in all required fields: {', '.join(missing)}"
            )

    def _build_geofence(self) -> Geofence:
        now = datetime.now(timezone.utc)
        editing = self._editing
        return Geofence(
            # Placeholder id until the API assigns one
            id=editing.id if editing else str(int(time.time() * 1000)),
            name=self._form.name.strip(),
            phone_number=self._form.phone_number.strip(),
            shape_type=shape_type_of(self._shape),
            visibility=self._form.visibility,
            shape=self._shape,
            color=self._form.color,
            perimeter_meters=self._metrics.perimeter_meters,
            area_square_meters=self._metrics.area_square_meters,
            created_at=editing.created_at if editing else now,
            updated_at=now if editing else None,
            address=self._form.address,
            final_address=self._form.final_address,
            user_id=editing.user_id if editing else None,
            user_email=editing.user_email if editing else None,
            created_by=editing.created_by if editing else None,
        )

    async def commit(self) -> Union[Geofence, GeozoneError]:
        """
        Validate and persist the geofence. Returns the saved geofence, or the
        error that kept the session in its editing state.
        """
        error = self._require_editable()
        if error:
            return error

        resume_state = SessionState.EDITING if self._state == SessionState.DRAWING else self._state
        self._transition(SessionState.COMMITTING)

        try:
            self._check_metadata()
            geofence_service.validate_shape(self._shape)
        except GeofenceValidationError as e:
            self._transition(resume_state)
            return self._fail(e)

        self._set_shape(self._shape)
        geofence = self._build_geofence()
        generation = self._generation
        try:
            saved = await self.registry.save(geofence, is_new=self._editing is None)
        except PersistenceError as e:
            logger.error(f"Saving geofence '{geofence.name}' failed: {e.message}")
            if generation != self._generation:
                logger.info("Edit session was reset while saving, staying in its current state")
                return e
            self._transition(resume_state)
            return self._fail(e)

        if generation != self._generation:
            logger.info(f"Edit session was reset while saving; geofence {saved.id} saved anyway")
            return saved

        self._release_overlay()
        self._reset()
        self._transition(SessionState.IDLE)
        return saved

    def cancel(self) -> None:
        """Discard the shape being drawn/edited and release its overlay."""
        editing = self._editing
        self._release_overlay()
        self._reset()
        self._transition(SessionState.IDLE)
        if editing is not None:
            self.registry.render_geofence(editing)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state,
            "shape": self._shape,
            "metrics": self._metrics,
            "form": self.form,
            "overlay_handle": self._overlay_handle,
            "editing_geofence_id": self.editing_geofence_id,
            "error": self.last_error,
        }


class EditSessionManager:
    """One edit session, map surface and geofence list per surface id"""

    def __init__(self, api_client, geocoder=None, surface_factory=None):
        self.api_client = api_client
        self.geocoder = geocoder
        self.surface_factory = surface_factory or (lambda surface_id: ServerMapSurface(surface_id, geocoder))
        self.sessions: Dict[str, GeofenceEditSession] = {}

    def open(self, surface_id: str) -> GeofenceEditSession:
        session = self.sessions.get(surface_id)
        if session is None:
            surface = self.surface_factory(surface_id)
            registry = GeofenceRegistry(self.api_client, surface)
            session = GeofenceEditSession(surface, registry)
            self.sessions[surface_id] = session
            logger.info(f"Opened edit session for surface {surface_id}")
        return session

    def get(self, surface_id: str) -> Optional[GeofenceEditSession]:
        return self.sessions.get(surface_id)

    def close(self, surface_id: str) -> None:
        session = self.sessions.pop(surface_id, None)
        if session is not None:
            session.cancel()
            session.registry.clear_overlays()
            logger.info(f"Closed edit session for surface {surface_id}")
