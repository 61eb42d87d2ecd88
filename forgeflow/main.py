# forgeflow/main.py
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .config import setup_logging
from .engine import WorkflowEngine
from .errors import GraphValidationError
from .handlers import list_handlers
from .handlers.custom import CustomNodeDefinition, register_custom_node
from .models import FlowSpec
from .workflows.examples import EXAMPLES

setup_logging()

app = FastAPI(title="ForgeFlow Workflow Engine")

engine = WorkflowEngine()


def _record(run_id: str) -> dict:
    return engine.get_run(run_id).model_dump(by_alias=True)


@app.post("/flows")
async def create_flow(spec: FlowSpec):
    flow_id = engine.create_flow(spec)
    return {"flow_id": flow_id, "node_count": len(spec.nodes), "edge_count": len(spec.edges)}


@app.get("/flows/{flow_id}")
async def get_flow(flow_id: str):
    try:
        return engine.get_flow(flow_id).model_dump(by_alias=True)
    except KeyError:
        raise HTTPException(status_code=404, detail="flow not found")


class RunPayload(BaseModel):
    run_in_background: Optional[bool] = False


@app.post("/flows/{flow_id}/run")
async def run_flow(flow_id: str, payload: Optional[RunPayload] = None):
    payload = payload or RunPayload()
    try:
        run_id = await engine.run_flow(flow_id, run_in_background=payload.run_in_background)
    except KeyError:
        raise HTTPException(status_code=404, detail="flow not found")
    except GraphValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    # if background, respond immediately with the run as it stands
    return _record(run_id)


@app.get("/runs/{run_id}")
async def get_run(run_id: str):
    try:
        return _record(run_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="run not found")


@app.post("/runs/{run_id}/abort")
async def abort_run(run_id: str):
    try:
        aborted = engine.abort_run(run_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="run not found")
    return {"run_id": run_id, "aborted": aborted}


@app.get("/approvals")
async def list_approvals():
    return {"approvals": [approval.to_dict() for approval in engine.approvals.pending()]}


class ApprovalDecision(BaseModel):
    approved: bool


@app.post("/approvals/{approval_id}")
async def decide_approval(approval_id: str, decision: ApprovalDecision):
    try:
        engine.approvals.resolve(approval_id, decision.approved)
    except KeyError:
        raise HTTPException(status_code=404, detail="approval not found")
    return {"approval_id": approval_id, "approved": decision.approved}


@app.get("/handlers")
async def get_handlers():
    return {"handlers": list_handlers()}


@app.post("/custom-nodes")
async def create_custom_node(definition: CustomNodeDefinition):
    register_custom_node(definition)
    return {"type": definition.type}


# build and run one of the bundled example flows
@app.post("/example/run/{name}")
async def run_example(name: str):
    builder = EXAMPLES.get(name)
    if builder is None:
        raise HTTPException(status_code=404, detail=f"example {name} not found")
    flow_id = engine.create_flow(builder())
    run_id = await engine.run_flow(flow_id)
    return {"flow_id": flow_id, **_record(run_id)}


if __name__ == "__main__":
    uvicorn.run("forgeflow.main:app", host="0.0.0.0", port=8000, reload=True)
