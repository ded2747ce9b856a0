"""
Key-value run ledger backed by Redis.

Holds everything the pipeline keeps outside the relational store:

    pipeline-run:{run_id}       serialized run report (time-bounded)
    pipeline-run:latest         id of the most recent run
    pipeline-lease:{mode}       run lease token with expiry
    source-health:{source_id}   per-feed fetch counters (time-bounded)
    scheduler:last-run          last scheduler pass summary (time-bounded)
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json
import logging
import uuid

import redis

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import StorageFailure

logger = logging.getLogger(__name__)

RUN_KEY = "pipeline-run:{run_id}"
LATEST_RUN_KEY = "pipeline-run:latest"
LEASE_KEY = "pipeline-lease:{mode}"
SOURCE_HEALTH_KEY = "source-health:{source_id}"
SCHEDULER_KEY = "scheduler:last-run"


class RunLedger:
    """Thin wrapper over a redis client; every Redis error surfaces as StorageFailure."""

    def __init__(self, redis_client: redis.Redis, settings: Optional[Settings] = None):
        self.redis = redis_client
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.RunLedger")

    # ------------------------------------------------------------------
    # Run reports
    # ------------------------------------------------------------------

    def save_run(self, report: Dict[str, Any]) -> None:
        run_id = report["pipeline_run_id"]
        try:
            self.redis.setex(
                RUN_KEY.format(run_id=run_id),
                self.settings.run_record_ttl_seconds,
                json.dumps(report, default=str),
            )
            self.redis.set(LATEST_RUN_KEY, run_id)
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to store run {run_id}: {e}") from e
        self._logger.debug(f"[LEDGER] Stored run {run_id}")

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        raw = self._get(RUN_KEY.format(run_id=run_id))
        return json.loads(raw) if raw else None

    def latest_run_id(self) -> Optional[str]:
        return self._get(LATEST_RUN_KEY)

    def latest_run(self) -> Optional[Dict[str, Any]]:
        run_id = self.latest_run_id()
        if not run_id:
            return None
        return self.get_run(run_id)

    # ------------------------------------------------------------------
    # Run lease
    # ------------------------------------------------------------------

    def acquire_lease(self, mode: str) -> Optional[str]:
        """
        Take the lease for `mode`.

        Returns:
            Lease token, or None when another run holds it
        """
        token = str(uuid.uuid4())
        try:
            acquired = self.redis.set(
                LEASE_KEY.format(mode=mode),
                token,
                nx=True,
                ex=self.settings.run_lease_seconds,
            )
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to acquire lease for {mode}: {e}") from e
        return token if acquired else None

    def release_lease(self, mode: str, token: str) -> bool:
        """Release the lease only if we still own it."""
        key = LEASE_KEY.format(mode=mode)
        try:
            if self.redis.get(key) != token:
                return False
            self.redis.delete(key)
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to release lease for {mode}: {e}") from e
        return True

    # ------------------------------------------------------------------
    # Source health
    # ------------------------------------------------------------------

    def record_source_health(
        self,
        source_id: str,
        name: str,
        url: str,
        ok: bool,
        collected: int = 0,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = SOURCE_HEALTH_KEY.format(source_id=source_id)
        now = datetime.now(timezone.utc).isoformat()

        raw = self._get(key)
        health = json.loads(raw) if raw else {
            "source_id": source_id,
            "fetch_count": 0,
            "error_count": 0,
            "last_success": None,
            "last_error": None,
        }
        health.update({"name": name, "url": url, "last_collected": now})
        health["fetch_count"] += 1
        health["last_ok"] = ok
        if ok:
            health["last_success"] = now
            health["last_items"] = collected
        else:
            health["error_count"] += 1
            health["last_error"] = error

        try:
            self.redis.setex(key, self.settings.source_health_ttl_seconds, json.dumps(health))
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to store health for {source_id}: {e}") from e
        return health

    def get_source_health(self, source_id: str) -> Optional[Dict[str, Any]]:
        raw = self._get(SOURCE_HEALTH_KEY.format(source_id=source_id))
        return json.loads(raw) if raw else None

    def list_source_health(self) -> List[Dict[str, Any]]:
        try:
            keys = sorted(self.redis.keys(SOURCE_HEALTH_KEY.format(source_id="*")))
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to list source health: {e}") from e
        snapshots = []
        for key in keys:
            raw = self._get(key)
            if raw:
                snapshots.append(json.loads(raw))
        return snapshots

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    def save_scheduler_run(self, summary: Dict[str, Any]) -> None:
        try:
            self.redis.setex(
                SCHEDULER_KEY,
                self.settings.scheduler_record_ttl_seconds,
                json.dumps(summary, default=str),
            )
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to store scheduler run: {e}") from e

    def last_scheduler_run(self) -> Optional[Dict[str, Any]]:
        raw = self._get(SCHEDULER_KEY)
        return json.loads(raw) if raw else None

    def _get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except redis.RedisError as e:
            raise StorageFailure(f"Failed to read {key}: {e}") from e
