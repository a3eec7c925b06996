"""Scene routes for the HomeSim Management API.

Running a scene returns 202 immediately; the steps execute on a
background thread with their settle delays.
"""

from fastapi import APIRouter, HTTPException

from .models import SceneCreate, SceneResponse, SceneUpdate

router = APIRouter(prefix="/api/v1/scenes", tags=["scenes"])


@router.get("", response_model=list[SceneResponse])
def list_scenes():
    home = router.app.state.home
    return home.scenes.list_scenes()


@router.get("/{scene_id}", response_model=SceneResponse)
def get_scene(scene_id: str):
    home = router.app.state.home
    scene = home.scenes.get_scene(scene_id)
    if not scene:
        raise HTTPException(status_code=404, detail="Scene not found")
    return scene


@router.post("", response_model=SceneResponse, status_code=201)
def create_scene(body: SceneCreate):
    home = router.app.state.home
    for action in body.actions:
        if not home.registry.get_device(action.device_id):
            raise HTTPException(status_code=422, detail=f"Unknown device: {action.device_id}")
    return home.scenes.add_scene(body.model_dump(exclude_none=True))


@router.patch("/{scene_id}", response_model=SceneResponse)
def update_scene(scene_id: str, body: SceneUpdate):
    home = router.app.state.home
    if not home.scenes.get_scene(scene_id):
        raise HTTPException(status_code=404, detail="Scene not found")
    updates = body.model_dump(exclude_none=True)
    if not updates:
        return home.scenes.get_scene(scene_id)
    return home.scenes.update_scene(scene_id, updates)


@router.delete("/{scene_id}", status_code=204)
def delete_scene(scene_id: str):
    home = router.app.state.home
    if not home.scenes.delete_scene(scene_id):
        raise HTTPException(status_code=404, detail="Scene not found")


@router.post("/{scene_id}/run", status_code=202)
def run_scene(scene_id: str):
    """Start a scene in the background."""
    home = router.app.state.home
    scene = home.scenes.get_scene(scene_id)
    if not scene:
        raise HTTPException(status_code=404, detail="Scene not found")
    if not scene.get("is_active", True):
        raise HTTPException(status_code=409, detail="Scene is inactive")
    home.scenes.run_scene_in_background(scene_id)
    return {"status": "started", "scene_id": scene_id, "actions": len(scene.get("actions", []))}
