"""Automation rule routes for the HomeSim Management API.

Rules created here are persisted in the store and registered with the
live engine at once; temperature-check rules start their periodic task
immediately when the simulator is running.
"""

from fastapi import APIRouter, HTTPException

from .models import RuleCreate, RuleResponse, RuleUpdate

router = APIRouter(prefix="/api/v1/automations", tags=["automations"])


@router.get("", response_model=list[RuleResponse])
def list_rules():
    home = router.app.state.home
    return home.engine.list_rules()


@router.get("/{rule_id}", response_model=RuleResponse)
def get_rule(rule_id: str):
    home = router.app.state.home
    rule = home.engine.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("", response_model=RuleResponse, status_code=201)
def create_rule(body: RuleCreate):
    home = router.app.state.home
    if not home.registry.get_device(body.trigger.device_id):
        raise HTTPException(status_code=422, detail=f"Unknown device: {body.trigger.device_id}")
    try:
        return home.engine.add_rule(body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.patch("/{rule_id}", response_model=RuleResponse)
def update_rule(rule_id: str, body: RuleUpdate):
    home = router.app.state.home
    if not home.engine.get_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    updates = body.model_dump(exclude_none=True)
    if not updates:
        return home.engine.get_rule(rule_id)
    try:
        return home.engine.update_rule(rule_id, updates)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.delete("/{rule_id}", status_code=204)
def delete_rule(rule_id: str):
    home = router.app.state.home
    if not home.engine.delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
