"""Scenes — named, ordered batches of device actions run on demand.

run_scene executes the actions strictly one after another, waiting a
settle delay before each to model hardware latency. The delay is spent
outside the store lock, so timers may touch the same devices between
steps; scenes do not lock devices.

A step whose device no longer exists, or whose action type is unknown, is
skipped and the remaining steps still run.
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable

from .analytics import Analytics
from .notifications import NotificationCenter
from .registry import DeviceRegistry
from .store import Store, now_iso

logger = logging.getLogger("homesim.scenes")

DEFAULT_SETTLE_DELAY = 0.2

# Scene action type → device field it sets
ACTION_FIELDS = {
    "toggle": "is_on",
    "brightness": "brightness",
    "temperature": "target_temperature",
    "color": "color",
    "mode": "mode",
}


class SceneRunner:
    """Scene CRUD and sequential execution."""

    def __init__(
        self,
        store: Store,
        registry: DeviceRegistry,
        notifications: NotificationCenter,
        analytics: Analytics,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ):
        self._store = store
        self._registry = registry
        self._notifications = notifications
        self._analytics = analytics
        self.settle_delay = settle_delay
        # One scene at a time
        self._run_lock = threading.Lock()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add_scene(self, data: dict) -> dict:
        current_home = self._store.get("current_home")
        scene = {
            "actions": [],
            "trigger": {"type": "manual"},
            **data,
            "id": data.get("id") or uuid.uuid4().hex,
            "home_id": data.get("home_id") or (current_home["id"] if current_home else None),
            "is_active": data.get("is_active", True),
            "last_run": None,
            "created_at": now_iso(),
        }
        with self._store.lock:
            self._store.set("scenes", self._store.get("scenes") + [scene])
        logger.info("Scene added: %s (%d action(s))", scene.get("name"), len(scene["actions"]))
        return scene

    def get_scene(self, scene_id: str) -> dict | None:
        for scene in self._store.get("scenes"):
            if scene["id"] == scene_id:
                return scene
        return None

    def list_scenes(self) -> list[dict]:
        return list(self._store.get("scenes"))

    def update_scene(self, scene_id: str, updates: dict) -> dict | None:
        with self._store.lock:
            if not self.get_scene(scene_id):
                return None
            updates = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
            self._store.set(
                "scenes",
                [
                    {**s, **updates, "updated_at": now_iso()} if s["id"] == scene_id else s
                    for s in self._store.get("scenes")
                ],
            )
            return self.get_scene(scene_id)

    def delete_scene(self, scene_id: str) -> bool:
        with self._store.lock:
            scenes = self._store.get("scenes")
            remaining = [s for s in scenes if s["id"] != scene_id]
            if len(remaining) == len(scenes):
                return False
            self._store.set("scenes", remaining)
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_scene(self, scene_id: str, on_complete: Callable[[dict], None] | None = None) -> bool:
        """Run every action of a scene in order.

        Returns False when the scene is missing or inactive, True once all
        steps were attempted.
        """
        scene = self.get_scene(scene_id)
        if not scene or not scene.get("is_active", True):
            logger.debug("run_scene: %s missing or inactive", scene_id)
            return False

        with self._run_lock:
            logger.info("Running scene %s (%d action(s))", scene.get("name"), len(scene["actions"]))
            applied = 0
            for index, action in enumerate(scene.get("actions", [])):
                if self._execute_action(action):
                    applied += 1
                else:
                    logger.warning("Scene %s: step %d skipped (%s)", scene_id, index + 1, action)

            finished = self.update_scene(scene_id, {"last_run": now_iso()}) or scene
            self._analytics.record_scene_run(scene_id)
            self._notifications.add(
                {
                    "type": "success",
                    "title": "Scene complete",
                    "message": f'Scene "{scene.get("name")}" ran successfully',
                    "icon": scene.get("icon") or "🏠",
                }
            )
            logger.info("Scene %s done: %d/%d step(s) applied", scene_id, applied, len(scene["actions"]))

        if on_complete:
            on_complete(finished)
        return True

    def run_scene_in_background(self, scene_id: str, on_complete=None) -> threading.Thread:
        thread = threading.Thread(
            target=self.run_scene,
            args=(scene_id, on_complete),
            name=f"scene-{scene_id}",
            daemon=True,
        )
        thread.start()
        return thread

    def _execute_action(self, action: dict) -> bool:
        device_id = action.get("device_id")
        if not self._registry.get_device(device_id):
            return False

        field = ACTION_FIELDS.get(action.get("type"))
        if field is None:
            return False

        if self.settle_delay > 0:
            time.sleep(self.settle_delay)

        value = action.get("value")
        result = self._registry.update_device(device_id, {field: value, "last_action": now_iso()})
        if result is None:
            # Removed while we were waiting
            return False
        self._analytics.record_device_action(device_id, action["type"], value)
        return True
