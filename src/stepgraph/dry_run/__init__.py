"""
Dry-Run Executor - per-node test runs during authoring.

This package provides:
- DryRunExecutor / test_step: the ancestor-resolution protocol
- EXECUTORS: per-node-type executors
- NodeOutput / StepTestResult: cached outputs and run results
- the DryRunError taxonomy
"""

from .errors import (
    CodeExecutionError,
    CodeResourceError,
    CodeTimeoutError,
    DryRunError,
    HttpConnectivityError,
    HttpStatusError,
    HttpTimeoutError,
    NetworkError,
    NodeExecutionError,
    UpstreamStepError,
)
from .executors import EXECUTORS, BaseExecutor, ExecutorRuntime, run_node
from .http import HttpClient, HttpResponse
from .models import NodeOutput, StepTestResult
from .runner import DryRunExecutor, OutputCache, build_context, test_step
from .sandbox import CodeRunResult, CodeSandbox

__all__ = [
    # Errors
    "DryRunError",
    "NodeExecutionError",
    "CodeExecutionError",
    "CodeTimeoutError",
    "CodeResourceError",
    "NetworkError",
    "HttpTimeoutError",
    "HttpConnectivityError",
    "HttpStatusError",
    "UpstreamStepError",
    # Executors
    "EXECUTORS",
    "BaseExecutor",
    "ExecutorRuntime",
    "run_node",
    "HttpClient",
    "HttpResponse",
    "CodeSandbox",
    "CodeRunResult",
    # Runner
    "NodeOutput",
    "StepTestResult",
    "DryRunExecutor",
    "OutputCache",
    "build_context",
    "test_step",
]
