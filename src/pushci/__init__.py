from .dsl import cargo, checkout, job, rust_workflow, sh, toolchain, wf, workflow
from .model import Job, PipelineState, PushTrigger, Step, TriggerEvent, Workflow
from .runner import PipelineError, PipelineResult, PipelineRunner, StepFailure

__all__ = [
    "job", "sh", "checkout", "toolchain", "cargo", "wf", "workflow", "rust_workflow",
    "Job", "Step", "Workflow", "PushTrigger", "TriggerEvent", "PipelineState",
    "PipelineRunner", "PipelineResult", "PipelineError", "StepFailure",
]
