# pushci_workflow.py
# Build and run the Rust project in src/ on every push to develop.
from __future__ import annotations

from pushci import wf, job, sh, checkout, toolchain, cargo


def workflow():
    return wf(
        job(
            "build",
            checkout(),
            toolchain("Install Rust", toolchain="stable", profile="minimal", override=True),
            cargo("Build", "build", "--release"),
            sh("Run", "cargo run", phase="run"),
            runs_on="ubuntu-latest",
            working_directory="src",
        ),
        name="Rust - Build and Run",
        branches=["develop"],
    )
