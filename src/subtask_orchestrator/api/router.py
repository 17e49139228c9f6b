from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ..orchestrator.service import OrchestrationEngine


class CreatePlanRequest(BaseModel):
    parent_task_id: str
    title: str
    description: str = ""
    execute: bool = False


class SpawnAgentRequest(BaseModel):
    name: Optional[str] = None
    model: Optional[str] = None
    cleanup_policy: Optional[str] = None


class SpawnedRequest(BaseModel):
    session_key: str


class ResultRequest(BaseModel):
    result: str
    output: Optional[str] = None


class FailureRequest(BaseModel):
    error: str


class SyncRequest(BaseModel):
    plan_id: Optional[str] = None


EngineResolver = Callable[[Optional[str]], OrchestrationEngine]


def create_orchestration_router(resolve_engine: EngineResolver) -> APIRouter:
    router = APIRouter(prefix="/api/orchestration", tags=["orchestration"])

    @router.post("/plans")
    async def create_plan(body: CreatePlanRequest, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        engine = resolve_engine(project_dir)
        plan = engine.plan_task(body.parent_task_id, body.title, body.description)
        agents = engine.execute_next_ready(plan.id) if body.execute else []
        if agents:
            plan = engine.get_plan(plan.id)
        return {"plan": plan.to_dict(), "agents": [agent.to_dict() for agent in agents]}

    @router.get("/plans")
    async def list_plans(parent_task_id: Optional[str] = Query(None), project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        engine = resolve_engine(project_dir)
        return {"plans": [plan.to_dict() for plan in engine.list_plans(parent_task_id)]}

    @router.get("/plans/{plan_id}")
    async def get_plan(plan_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return resolve_engine(project_dir).get_plan_status(plan_id)

    @router.delete("/plans/{plan_id}")
    async def delete_plan(plan_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"deleted": resolve_engine(project_dir).delete_plan(plan_id)}

    @router.get("/plans/{plan_id}/ready")
    async def ready_subtasks(plan_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        subtasks = resolve_engine(project_dir).get_ready_subtasks(plan_id)
        return {"subtasks": [subtask.to_dict() for subtask in subtasks]}

    @router.post("/plans/{plan_id}/execute-next")
    async def execute_next(plan_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        agents = resolve_engine(project_dir).execute_next_ready(plan_id)
        return {"agents": [agent.to_dict() for agent in agents]}

    @router.post("/plans/{plan_id}/subtasks/{subtask_id}/agents")
    async def spawn_agent(
        plan_id: str,
        subtask_id: str,
        body: Optional[SpawnAgentRequest] = None,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        config = body.model_dump(exclude_none=True) if body is not None else {}
        agent = resolve_engine(project_dir).create_subagent(plan_id, subtask_id, config)
        return {"agent": agent.to_dict()}

    @router.get("/agents")
    async def list_agents(
        plan_id: Optional[str] = Query(None),
        active: bool = Query(False),
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = resolve_engine(project_dir)
        agents = engine.list_active_agents() if active else engine.list_agents(plan_id)
        if active and plan_id:
            agents = [agent for agent in agents if agent.plan_id == plan_id]
        return {"agents": [agent.to_dict() for agent in agents]}

    @router.get("/agents/{agent_id}")
    async def get_agent(agent_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"agent": resolve_engine(project_dir).get_agent(agent_id).to_dict()}

    @router.post("/agents/{agent_id}/spawned")
    async def mark_spawned(agent_id: str, body: SpawnedRequest, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        agent = resolve_engine(project_dir).mark_spawn_processed(agent_id, body.session_key)
        return {"agent": agent.to_dict()}

    @router.post("/agents/{agent_id}/result")
    async def report_result(agent_id: str, body: ResultRequest, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        agent, subtask = resolve_engine(project_dir).report_result(agent_id, body.result, body.output)
        return {"agent": agent.to_dict(), "subtask": subtask.to_dict()}

    @router.post("/agents/{agent_id}/failure")
    async def report_failure(agent_id: str, body: FailureRequest, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        agent, subtask = resolve_engine(project_dir).report_failure(agent_id, body.error)
        return {"agent": agent.to_dict(), "subtask": subtask.to_dict()}

    @router.post("/agents/{agent_id}/cancel")
    async def cancel_agent(agent_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"agent": resolve_engine(project_dir).cancel_agent(agent_id).to_dict()}

    @router.get("/spawn-queue/pending")
    async def pending_spawns(project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        entries = resolve_engine(project_dir).get_pending_spawns()
        return {"entries": [entry.to_dict() for entry in entries]}

    @router.post("/sync")
    async def sync_board(body: Optional[SyncRequest] = None, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        plan_id = body.plan_id if body is not None else None
        return resolve_engine(project_dir).sync_board(plan_id)

    @router.get("/events")
    async def recent_events(limit: int = Query(100, ge=1, le=1000), project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"events": resolve_engine(project_dir).recent_events(limit)}

    return router
