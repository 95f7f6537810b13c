# server.py
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from . import settings
from .dispatch import Dispatcher
from .model import TriggerEvent, Workflow
from .runner import PipelineRunner
from .trigger import branch_from_ref, describe, should_trigger

# -------------------- Schemas --------------------

class PushRepository(BaseModel):
    clone_url: Optional[str] = None
    full_name: Optional[str] = None


class PushPayload(BaseModel):
    ref: str
    after: Optional[str] = None
    deleted: bool = False
    repository: PushRepository = Field(default_factory=PushRepository)


class PushResponse(BaseModel):
    triggered: bool
    run_id: Optional[str] = None
    reason: Optional[str] = None


class RunResponse(BaseModel):
    run_id: str
    branch: str
    sha: Optional[str]
    status: str
    created_at: str
    finished_at: Optional[str]
    result: Optional[dict[str, Any]]

# -------------------- Helpers --------------------

def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check a GitHub `X-Hub-Signature-256: sha256=<hex>` header."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])

# -------------------- App --------------------

def create_app(
    workflow: Workflow,
    *,
    dispatcher: Optional[Dispatcher] = None,
    secret: Optional[str] = None,
) -> FastAPI:
    dispatcher = dispatcher or Dispatcher(PipelineRunner(workflow))
    secret = secret if secret is not None else settings.WEBHOOK_SECRET

    app = FastAPI(title="pushci webhook receiver")
    app.state.dispatcher = dispatcher

    @app.on_event("shutdown")
    def shutdown() -> None:
        dispatcher.shutdown(wait=False)

    @app.post("/webhooks/push", response_model=PushResponse)
    async def push(
        request: Request,
        x_github_event: Optional[str] = Header(default=None),
        x_hub_signature_256: Optional[str] = Header(default=None),
    ):
        body = await request.body()
        if secret and not verify_signature(secret, body, x_hub_signature_256):
            raise HTTPException(status_code=401, detail="Invalid signature")

        if x_github_event is not None and x_github_event != "push":
            return PushResponse(triggered=False, reason=f"ignored event {x_github_event!r}")

        try:
            payload = PushPayload.model_validate_json(body)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

        branch = branch_from_ref(payload.ref)
        if branch is None:
            return PushResponse(triggered=False, reason=f"{payload.ref} is not a branch")
        if payload.deleted:
            return PushResponse(triggered=False, reason=f"branch {branch} was deleted")

        event = TriggerEvent(
            branch=branch,
            sha=payload.after,
            repo=payload.repository.clone_url,
        )
        if not should_trigger(workflow.on, event):
            return PushResponse(triggered=False, reason=f"workflow runs on {describe(workflow.on)}")

        record = dispatcher.submit(event)
        return JSONResponse(
            status_code=202,
            content=PushResponse(triggered=True, run_id=record.id).model_dump(),
        )

    @app.get("/runs", response_model=list[RunResponse])
    async def list_runs():
        return [RunResponse(**r.to_dict()) for r in dispatcher.runs()]

    @app.get("/runs/{run_id}", response_model=RunResponse)
    async def get_run(run_id: str):
        record = dispatcher.get(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return RunResponse(**record.to_dict())

    return app
