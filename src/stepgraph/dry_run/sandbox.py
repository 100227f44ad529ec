"""
Code sandbox - runs user-authored code steps out of process.

The user's code becomes the body of a function taking input, steps,
item, index, now and the step's named input mappings. It runs in a
separate interpreter (isolated mode, no user site-packages) with a
wall-clock limit and, on POSIX, an address-space limit. Arguments go in
as JSON on stdin and the return value comes back as JSON on stdout.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import CodeExecutionError, CodeResourceError, CodeTimeoutError


logger = logging.getLogger(__name__)

if os.name == "posix":
    import resource
else:
    resource = None


RUNNER_SOURCE = '''
import io
import json
import sys
import textwrap

payload = json.loads(sys.stdin.read())
params = ["input", "steps", "item", "index", "now"] + payload["mappings"]
source = "def __step__(" + ", ".join(params) + "):\\n" + textwrap.indent(payload["code"] or "pass", "    ")
args = payload["args"]
steps = {key: value for key, value in args["steps"]}

captured = io.StringIO()
real_stdout = sys.stdout
sys.stdout = captured
try:
    namespace = {"__name__": "__step__"}
    exec(compile(source, "<code step>", "exec"), namespace)
    result = namespace["__step__"](
        args["input"], steps, args["item"], args["index"], args["now"], *args["values"]
    )
    outcome = {"ok": True, "result": result}
except BaseException as e:
    outcome = {"ok": False, "error": str(e), "type": type(e).__name__}
finally:
    sys.stdout = real_stdout

outcome["stdout"] = captured.getvalue()
print(json.dumps(outcome, default=str))
'''


@dataclass
class CodeRunResult:
    """Value returned by a code step plus anything it printed."""
    result: Any = None
    stdout: str = ""


@dataclass
class CodeSandbox:
    """
    Resource-capped runner for code steps.

    Usage:
        sandbox = CodeSandbox(timeout_s=10, memory_limit_mb=128)
        out = sandbox.run("return input['n'] + 1", input={"n": 1})
    """
    timeout_s: float = 10
    memory_limit_mb: int = 128
    python_executable: str = field(default_factory=lambda: sys.executable)

    def _limit_resources(self) -> None:
        limit = self.memory_limit_mb * 1024 * 1024
        resource.setrlimit(resource.RLIMIT_AS, (limit, limit))

    def run(
        self,
        code: str,
        input: Any = None,
        steps: Optional[Dict[Any, Any]] = None,
        item: Any = None,
        index: Optional[int] = None,
        now: Optional[str] = None,
        mappings: Optional[Dict[str, Any]] = None,
        node_id: Optional[str] = None,
    ) -> CodeRunResult:
        """
        Run one code step.

        Raises:
            CodeExecutionError: The code raised (or failed to compile)
            CodeTimeoutError: The wall-clock limit was hit
            CodeResourceError: The memory limit was hit or the process died
        """
        mappings = mappings or {}
        # steps keys may be int labels; pairs survive the JSON trip intact
        step_pairs: List[List[Any]] = [[k, v] for k, v in (steps or {}).items()]
        payload = {
            "code": code,
            "mappings": list(mappings.keys()),
            "args": {
                "input": input,
                "steps": step_pairs,
                "item": item,
                "index": index,
                "now": now,
                "values": list(mappings.values()),
            },
        }

        use_rlimit = resource is not None
        try:
            completed = subprocess.run(
                [self.python_executable, "-I", "-c", RUNNER_SOURCE],
                input=json.dumps(payload, default=str),
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                preexec_fn=self._limit_resources if use_rlimit else None,
            )
        except subprocess.TimeoutExpired as e:
            raise CodeTimeoutError(self.timeout_s, node_id=node_id) from e

        if completed.returncode != 0:
            logger.debug("Code sandbox exited with %s: %s", completed.returncode, completed.stderr[-500:])
            if completed.returncode < 0 or "MemoryError" in completed.stderr:
                raise CodeResourceError(
                    f"Code was stopped (exit {completed.returncode}); "
                    f"the limit is {self.memory_limit_mb}MB of memory",
                    node_id=node_id,
                )
            raise CodeExecutionError(
                completed.stderr.strip().splitlines()[-1] if completed.stderr.strip() else
                f"sandbox exited with {completed.returncode}",
                node_id=node_id,
            )

        try:
            outcome = json.loads(completed.stdout.strip().splitlines()[-1])
        except (json.JSONDecodeError, IndexError) as e:
            raise CodeExecutionError(f"Invalid sandbox output: {completed.stdout[:200]}", node_id=node_id) from e

        if outcome.get("ok"):
            return CodeRunResult(result=outcome.get("result"), stdout=outcome.get("stdout", ""))

        error_type = outcome.get("type")
        if error_type == "MemoryError":
            raise CodeResourceError(
                f"Code ran out of memory (limit {self.memory_limit_mb}MB)",
                node_id=node_id,
                error_type=error_type,
            )
        raise CodeExecutionError(
            outcome.get("error", ""),
            node_id=node_id,
            error_type=error_type,
            stdout=outcome.get("stdout", ""),
        )


__all__ = ["CodeSandbox", "CodeRunResult", "RUNNER_SOURCE"]
