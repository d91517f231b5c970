"""Progressive per-scene state populated by the batch orchestrator."""

import logging
import threading
from typing import Any, Optional

from .errors import SceneBusyError, SceneClosedError
from .models.schemas import Frame, SceneState

logger = logging.getLogger(__name__)


class SceneTracker:
    """Append-only store of scenes and their frames.

    Scenes are never removed and frames are never removed, replaced or
    reordered. Readers get immutable ``SceneState`` snapshots, so a snapshot
    taken earlier keeps its frames even as the scene grows.

    Mutations of different scenes may come from different threads. Writes
    to one scene are serialized by the single batch that owns it while it
    is in progress.
    """

    def __init__(self):
        self._scenes: dict[str, SceneState] = {}
        self._order: list[str] = []
        self._lock = threading.Lock()

    def create_scene(self, scene_id: str, metadata: Optional[dict[str, Any]] = None) -> SceneState:
        """Create an empty scene in progress.

        Raises:
            ValueError: If the id is already taken
        """
        with self._lock:
            if scene_id in self._scenes:
                raise ValueError(f"Scene already exists: {scene_id}")
            scene = SceneState(id=scene_id, metadata=dict(metadata or {}))
            self._scenes[scene_id] = scene
            self._order.append(scene_id)

        logger.debug(f"Created scene {scene_id}")
        return scene

    def reopen_scene(self, scene_id: str) -> SceneState:
        """Put a completed scene back in progress to append more frames.

        Raises:
            KeyError: If the scene doesn't exist
            SceneBusyError: If the scene is still in progress
        """
        with self._lock:
            scene = self._get(scene_id)
            if scene.is_in_progress:
                raise SceneBusyError(f"Scene {scene_id} already has a batch in progress")
            scene = scene.model_copy(update={"is_in_progress": True, "last_error": None})
            self._scenes[scene_id] = scene

        logger.debug(f"Reopened scene {scene_id} with {len(scene.frames)} frame(s)")
        return scene

    def open_scenes(
        self,
        scene_ids: list[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> list[SceneState]:
        """Atomically create or reopen a batch's scenes, all or nothing.

        Unknown ids are created; completed scenes are reopened.

        Raises:
            SceneBusyError: If any of the scenes is still in progress
        """
        with self._lock:
            for scene_id in scene_ids:
                scene = self._scenes.get(scene_id)
                if scene is not None and scene.is_in_progress:
                    raise SceneBusyError(f"Scene {scene_id} already has a batch in progress")

            opened = []
            for scene_id in scene_ids:
                scene = self._scenes.get(scene_id)
                if scene is None:
                    scene = SceneState(id=scene_id, metadata=dict(metadata or {}))
                    self._order.append(scene_id)
                else:
                    scene = scene.model_copy(update={"is_in_progress": True, "last_error": None})
                self._scenes[scene_id] = scene
                opened.append(scene)

        logger.debug(f"Opened scene(s): {', '.join(scene_ids)}")
        return opened

    def append_frame(self, scene_id: str, frame: Frame) -> SceneState:
        """Append a frame to the end of a scene in progress.

        Raises:
            KeyError: If the scene doesn't exist
            SceneClosedError: If the scene is completed
        """
        with self._lock:
            scene = self._require_open(scene_id)
            scene = scene.model_copy(update={"frames": scene.frames + (frame,)})
            self._scenes[scene_id] = scene

        logger.debug(f"Scene {scene_id}: appended frame {frame.frame_index}")
        return scene

    def mark_error(self, scene_id: str, message: str) -> SceneState:
        """Record a short diagnostic against a scene in progress."""
        with self._lock:
            scene = self._require_open(scene_id)
            scene = scene.model_copy(update={"last_error": message})
            self._scenes[scene_id] = scene
        return scene

    def mark_done(self, scene_id: str) -> SceneState:
        """Mark a scene terminal. Idempotent for completed scenes."""
        with self._lock:
            scene = self._get(scene_id)
            if scene.is_in_progress:
                scene = scene.model_copy(update={"is_in_progress": False})
                self._scenes[scene_id] = scene
        return scene

    def get(self, scene_id: str) -> SceneState:
        """Return the current snapshot of a scene.

        Raises:
            KeyError: If the scene doesn't exist
        """
        with self._lock:
            return self._get(scene_id)

    def has_scene(self, scene_id: str) -> bool:
        with self._lock:
            return scene_id in self._scenes

    def scenes(self) -> list[SceneState]:
        """All scenes in creation order."""
        with self._lock:
            return [self._scenes[scene_id] for scene_id in self._order]

    def _get(self, scene_id: str) -> SceneState:
        try:
            return self._scenes[scene_id]
        except KeyError:
            raise KeyError(f"Unknown scene: {scene_id}") from None

    def _require_open(self, scene_id: str) -> SceneState:
        scene = self._get(scene_id)
        if not scene.is_in_progress:
            raise SceneClosedError(f"Scene {scene_id} is completed; reopen it first")
        return scene
