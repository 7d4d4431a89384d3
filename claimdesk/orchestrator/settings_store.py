"""Match settings store with in-memory and Redis backends."""

import asyncio
import json
from typing import Any, Dict, Optional, Union
import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from claimdesk.constants import DEFAULT_WEIGHT_SUM_TOLERANCE
from claimdesk.models.settings import MatchSettings, MatchWeights, SettingsUpdate
from claimdesk.utils.errors import ConfigurationError, SettingsStoreError, ValidationError
from claimdesk.utils.logging import get_logger
from claimdesk.utils.timeutils import utcnow

logger = get_logger(__name__)


def default_settings(matching: Optional[Dict[str, Any]] = None) -> MatchSettings:
    """
    Build the initial snapshot from the `matching` config section.

    Args:
        matching: Config section; missing values fall back to the built-in defaults
    """
    matching = matching or {}
    fields = {
        key: matching[key]
        for key in ('auto_match_threshold', 'reject_threshold')
        if key in matching
    }
    return MatchSettings(weights=MatchWeights(**(matching.get('weights') or {})), **fields)


def validate_settings(settings: MatchSettings, tolerance: float = DEFAULT_WEIGHT_SUM_TOLERANCE) -> None:
    """
    Reject inconsistent settings.

    Raises:
        ValidationError: If a weight is outside [0, 1], the weights do not sum
            to 1, a threshold is outside [0, 100], or reject exceeds auto
    """
    weights = settings.weights.model_dump()
    out_of_range = [name for name, value in weights.items() if not 0 <= value <= 1]
    if out_of_range:
        raise ValidationError(f"Weights must lie in [0, 1]: {out_of_range}")

    total = settings.weights.total()
    if abs(total - 1) > tolerance:
        raise ValidationError(f"Weights must sum to 1 (got {total:.3f})")

    for name in ('auto_match_threshold', 'reject_threshold'):
        value = getattr(settings, name)
        if not 0 <= value <= 100:
            raise ValidationError(f"{name} must lie in [0, 100] (got {value})")

    if settings.reject_threshold > settings.auto_match_threshold:
        raise ValidationError("reject_threshold must not exceed auto_match_threshold")


class SettingsStore:
    """
    Holds the singleton settings snapshot.

    Readers get an immutable MatchSettings; update() builds and persists a new
    snapshot with the version incremented. The snapshot is created lazily with
    defaults on first read.
    """

    def __init__(
        self,
        backend: str = "memory",
        redis_client: Optional[redis.Redis] = None,
        key: str = "claimdesk:settings",
        defaults: Optional[MatchSettings] = None,
        tolerance: float = DEFAULT_WEIGHT_SUM_TOLERANCE
    ):
        if backend not in ("memory", "redis"):
            raise ConfigurationError(f"Unknown settings store backend: {backend}")
        if backend == "redis" and redis_client is None:
            raise ConfigurationError("Redis settings backend requires a redis client")

        self.backend = backend
        self.key = key
        self.tolerance = tolerance
        self._redis = redis_client
        self._defaults = defaults or MatchSettings()
        self._current: Optional[MatchSettings] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Optional[MatchSettings]:
        if self.backend == "memory":
            return self._current

        try:
            value = await self._redis.get(self.key)
        except Exception as e:
            raise SettingsStoreError(f"Failed to read settings: {e}")

        if not value:
            return None
        try:
            return MatchSettings.model_validate(json.loads(value))
        except (ValueError, PydanticValidationError) as e:
            raise SettingsStoreError(f"Stored settings are corrupt: {e}")

    async def _save(self, settings: MatchSettings) -> None:
        if self.backend == "memory":
            self._current = settings
            return

        try:
            await self._redis.set(self.key, settings.model_dump_json())
        except Exception as e:
            raise SettingsStoreError(f"Failed to save settings: {e}")

    async def get(self) -> MatchSettings:
        """Current snapshot, creating the defaults on first read"""
        settings = await self._load()
        if settings is not None:
            return settings

        async with self._lock:
            settings = await self._load()
            if settings is None:
                settings = self._defaults
                await self._save(settings)
                logger.info("Initialized default match settings", backend=self.backend)
            return settings

    async def update(self, changes: Union[SettingsUpdate, Dict[str, Any]]) -> MatchSettings:
        """
        Merge a partial update into the current snapshot.

        Weight updates merge field by field. The merged snapshot is validated
        before it is stored.

        Raises:
            ValidationError: If the update is malformed or the result is inconsistent
        """
        if not isinstance(changes, SettingsUpdate):
            try:
                changes = SettingsUpdate.model_validate(changes or {})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid settings update: {e}")

        current = await self.get()
        async with self._lock:
            current = await self._load() or current

            updates: Dict[str, Any] = changes.model_dump(exclude_none=True, exclude={'weights'})
            if changes.weights is not None:
                updates['weights'] = current.weights.model_copy(
                    update=changes.weights.model_dump(exclude_none=True)
                )
            updates['version'] = current.version + 1
            updates['updated_at'] = utcnow()

            candidate = current.model_copy(update=updates)
            validate_settings(candidate, self.tolerance)
            await self._save(candidate)

        logger.info(
            "Match settings updated",
            version=candidate.version,
            auto_match_threshold=candidate.auto_match_threshold,
            reject_threshold=candidate.reject_threshold,
            weights=candidate.weights.model_dump()
        )
        return candidate

    async def check_health(self) -> bool:
        """True if the backend is reachable"""
        if self.backend == "memory":
            return True
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


def create_settings_store(config: Dict[str, Any], redis_client: Optional[redis.Redis] = None) -> SettingsStore:
    """
    Build the settings store described by the configuration

    Args:
        config: Full engine configuration
        redis_client: Shared client; created from redis_url when the redis backend is selected
    """
    section = config.get('settings_store') or {}
    matching = config.get('matching') or {}
    backend = section.get('backend', 'memory')

    if backend == "redis" and redis_client is None:
        redis_client = redis.from_url(config.get('redis_url', 'redis://localhost:6379/0'), decode_responses=True)

    defaults = default_settings(matching)
    tolerance = matching.get('weight_sum_tolerance', DEFAULT_WEIGHT_SUM_TOLERANCE)
    try:
        validate_settings(defaults, tolerance)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid matching defaults: {e}")

    logger.info("Using settings store backend", backend=backend)
    return SettingsStore(
        backend=backend,
        redis_client=redis_client,
        key=section.get('key', 'claimdesk:settings'),
        defaults=defaults,
        tolerance=tolerance
    )
