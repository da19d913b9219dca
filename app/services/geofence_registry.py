"""
Geofence list owned by one UI session
"""
import logging
import math
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.errors import PersistenceError
from app.schemas.geofence import Geofence, PaginatedGeofences
from app.services.geofence_service import geofence_service
from app.services.geometry_codec import geofence_to_payload
from app.services.map_surface import MapSurface, OverlayHandle, OverlayStyle
from app.services.persistence_client import GeofenceApiClient

logger = logging.getLogger(__name__)


class GeofenceRegistry:
    """
    Committed geofences of the current page plus the read-only overlays
    drawn for them. Only the edit session (on commit) and `delete` mutate it.
    """

    def __init__(self, api_client: GeofenceApiClient, map_surface: Optional[MapSurface] = None):
        self.api_client = api_client
        self.map_surface = map_surface
        self.geofences: List[Geofence] = []
        self.overlays: Dict[str, OverlayHandle] = {}
        self.page = 1
        self.limit = settings.DEFAULT_PAGE_LIMIT
        self.total = 0
        self.skipped = 0
        self.search_text = ""
        # Geofence loaded into the edit session; its overlay belongs to the session
        self.active_geofence_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.limit))

    def set_page(self, page) -> int:
        try:
            page = int(page)
        except (TypeError, ValueError):
            page = 1
        if page < 1:
            page = 1
        elif page > self.total_pages:
            page = self.total_pages
        self.page = page
        return self.page

    def set_limit(self, limit) -> int:
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = settings.DEFAULT_PAGE_LIMIT
        if limit < settings.MIN_PAGE_LIMIT:
            limit = settings.DEFAULT_PAGE_LIMIT
        self.limit = limit
        return self.limit

    # ------------------------------------------------------------------
    # Loading and rendering
    # ------------------------------------------------------------------

    async def load(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        search_text: Optional[str] = None
    ) -> PaginatedGeofences:
        if limit is not None:
            self.set_limit(limit)
        if search_text is not None:
            if search_text != self.search_text:
                self.page = 1
            self.search_text = search_text
        if page is not None:
            self.page = max(1, int(page))

        result = await self.api_client.list_geofences(
            page=self.page,
            limit=self.limit,
            search_text=self.search_text or None
        )
        self.geofences = list(result.items)
        self.total = result.total
        self.skipped = result.skipped
        if result.skipped:
            logger.warning(f"{result.skipped} geofence(s) on page {self.page} could not be decoded")

        self.render_all()
        return result

    def get(self, geofence_id: str) -> Optional[Geofence]:
        for geofence in self.geofences:
            if geofence.id == geofence_id:
                return geofence
        return None

    def render_geofence(self, geofence: Geofence) -> Optional[OverlayHandle]:
        if self.map_surface is None:
            return None
        self.release_overlay(geofence.id)
        handle = self.map_surface.render_shape(geofence.shape, OverlayStyle.for_color(geofence.color))
        self.overlays[geofence.id] = handle
        return handle

    def render_all(self, exclude_id: Optional[str] = None) -> None:
        """Draw every geofence except the one being edited and frame them."""
        if self.map_surface is None:
            return
        if exclude_id is None:
            exclude_id = self.active_geofence_id
        self.clear_overlays()

        visible = [g for g in self.geofences if g.id != exclude_id]
        for geofence in visible:
            self.render_geofence(geofence)
        if visible:
            self.map_surface.fit_bounds(geofence_service.collect_bounds(g.shape for g in visible))

    def release_overlay(self, geofence_id: str) -> None:
        handle = self.overlays.pop(geofence_id, None)
        if handle is not None and self.map_surface is not None:
            self.map_surface.remove_overlay(handle)

    def clear_overlays(self) -> None:
        for geofence_id in list(self.overlays):
            self.release_overlay(geofence_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _replace(self, geofence_id: str, geofence: Geofence) -> None:
        for i, existing in enumerate(self.geofences):
            if existing.id == geofence_id:
                self.geofences[i] = geofence
                return
        self.geofences.insert(0, geofence)

    async def save(self, geofence: Geofence, is_new: bool) -> Geofence:
        """
        Optimistically place the geofence in the list, then persist it.
        The list is rolled back if the API call fails.
        """
        snapshot = list(self.geofences)
        snapshot_total = self.total
        self._replace(geofence.id, geofence)
        if is_new:
            self.total += 1

        payload = geofence_to_payload(geofence)
        try:
            if is_new:
                saved = await self.api_client.create_geofence(payload)
            else:
                saved = await self.api_client.update_geofence(geofence.id, payload)
        except PersistenceError:
            self.geofences = snapshot
            self.total = snapshot_total
            raise

        # The API assigns the real id; drop the placeholder entry
        self._replace(geofence.id, saved)
        if saved.id != geofence.id:
            self.release_overlay(geofence.id)
        self.render_geofence(saved)
        logger.info(f"{'Created' if is_new else 'Updated'} geofence '{saved.name}' ({saved.id})")
        return saved

    async def delete(self, geofence_id: str) -> None:
        snapshot = list(self.geofences)
        snapshot_total = self.total
        self.geofences = [g for g in self.geofences if g.id != geofence_id]
        if len(self.geofences) != len(snapshot):
            self.total = max(0, self.total - 1)

        try:
            await self.api_client.delete_geofence(geofence_id)
        except PersistenceError:
            self.geofences = snapshot
            self.total = snapshot_total
            raise

        self.release_overlay(geofence_id)
        logger.info(f"Deleted geofence {geofence_id}")

        # Deleting the last row of a page steps back one page
        if not self.geofences and self.page > 1:
            self.page -= 1
            await self.load()
