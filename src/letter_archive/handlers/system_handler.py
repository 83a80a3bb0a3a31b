"""HTTP handlers for health, cache diagnostics and maintenance."""

from letter_archive.dto import CacheClearResponse, CacheStatsResponse, HealthCheckResponse, SweepResponse
from letter_archive.entities import Actor
from letter_archive.errors import ArchiveError
from letter_archive.protocols import CacheStore, DataStore
from letter_archive.services import JobScheduler, MaintenanceService


def require_admin(actor: Actor) -> None:
    if not actor.is_elevated:
        raise ArchiveError.forbidden("Administrator role required")


class SystemHandler:
    """Operational endpoints.

    Cache statistics are open to any authenticated user; clearing the cache
    and triggering a storage sweep need the admin role.
    """

    def __init__(
        self,
        cache: CacheStore,
        store: DataStore,
        maintenance: MaintenanceService,
        scheduler: JobScheduler | None = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._maintenance = maintenance
        self._scheduler = scheduler

    def health(self) -> HealthCheckResponse:
        """Handle GET /health."""
        cache_healthy = self._cache.health_check()
        database_healthy = self._store.health_check()
        return HealthCheckResponse(
            status="healthy" if cache_healthy and database_healthy else "unhealthy",
            cache_healthy=cache_healthy,
            database_healthy=database_healthy,
            scheduler_running=bool(self._scheduler and self._scheduler.running),
        )

    def cache_stats(self) -> CacheStatsResponse:
        """Handle GET /cache/stats."""
        return CacheStatsResponse.model_validate(self._cache.get_stats())

    def clear_cache(self, actor: Actor) -> CacheClearResponse:
        """Handle DELETE /cache."""
        require_admin(actor)
        return CacheClearResponse(cleared=self._cache.flush_all())

    def sweep(self, actor: Actor) -> SweepResponse:
        """Handle POST /maintenance/sweep."""
        require_admin(actor)
        report = self._maintenance.reconcile_storage()
        return SweepResponse(
            scanned=report.scanned,
            deleted=report.deleted,
            failed=report.failed,
            skipped_recent=report.skipped_recent,
        )
