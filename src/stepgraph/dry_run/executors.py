"""
Node Executors - per-type behaviour of a test run.

Each executor takes a node, the output of its direct upstream step and
the expression context, and returns a NodeOutput. Nothing here touches
the graph or the output cache; that is the runner's job.

Only http_request (network) and code (subprocess) leave the process.
Triggers synthesize sample payloads, loop and wait only report what they
would do, and integration actions are never sent.
"""

from __future__ import annotations

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from ..config import Settings, get_settings
from ..expressions import (
    ExpressionContext,
    has_placeholder,
    resolve_config,
    resolve_template,
    to_display_string,
    utc_now_iso,
)
from ..graph.models import (
    CodeConfig,
    ConditionRow,
    Handle,
    HttpRequestConfig,
    IfConditionConfig,
    IntegrationConfig,
    LoopConfig,
    ManualTriggerConfig,
    MergeConfig,
    NodeType,
    ScheduleTriggerConfig,
    SetTransformConfig,
    WaitConfig,
    WebhookTriggerConfig,
    WorkflowNode,
)
from .errors import NodeExecutionError
from .http import HttpClient
from .models import NodeOutput
from .sandbox import CodeSandbox


logger = logging.getLogger(__name__)


@dataclass
class ExecutorRuntime:
    """Shared resources executors may use."""
    http: HttpClient
    sandbox: CodeSandbox

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ExecutorRuntime":
        settings = settings or get_settings()
        return cls(
            http=HttpClient(
                timeout_ms=settings.http_default_timeout_ms,
                max_timeout_ms=settings.http_max_timeout_ms,
            ),
            sandbox=CodeSandbox(
                timeout_s=settings.code_timeout_s,
                memory_limit_mb=settings.code_memory_limit_mb,
            ),
        )


class BaseExecutor(ABC):
    """
    Base class for node executors.

    Subclasses set `types` and implement execute(). Failures are raised
    as DryRunError subclasses.
    """

    types: ClassVar[Tuple[NodeType, ...]] = ()

    def __init__(self, runtime: ExecutorRuntime) -> None:
        self.runtime = runtime

    @abstractmethod
    def execute(self, node: WorkflowNode, input_data: Any, ctx: ExpressionContext) -> NodeOutput:
        """Run the node once and return its output."""


# ==============================================================================
# Triggers
# ==============================================================================

class ManualTriggerExecutor(BaseExecutor):
    """Returns the user's sample JSON, or a stub when there is none or it is invalid."""

    types = (NodeType.MANUAL_TRIGGER,)

    def execute(self, node, input_data, ctx):
        config: ManualTriggerConfig = node.config
        fallback = {"triggeredAt": utc_now_iso(), "source": "manual"}
        if not config.sample_data or not config.sample_data.strip():
            return NodeOutput(json=fallback)
        try:
            return NodeOutput(json=json.loads(config.sample_data))
        except json.JSONDecodeError:
            logger.debug("Sample data of %s is not valid JSON; using stub payload", node.id)
            return NodeOutput(json=fallback)


class WebhookTriggerExecutor(BaseExecutor):
    types = (NodeType.WEBHOOK_TRIGGER,)

    def execute(self, node, input_data, ctx):
        config: WebhookTriggerConfig = node.config
        return NodeOutput(json={
            "method": "POST" if config.method == "ANY" else config.method,
            "path": "/" + config.path.lstrip("/"),
            "headers": {"content-type": "application/json", "user-agent": "webhook-client/1.0"},
            "body": {"event": "test_event", "data": {"id": 1, "name": "Sample payload"}},
            "query": {},
        })


CRON_PRESETS: Dict[str, str] = {
    "every_5m": "*/5 * * * *",
    "hourly": "0 * * * *",
    "daily": "0 9 * * *",
    "weekly": "0 9 * * 1",
    "monthly": "0 9 1 * *",
}


class ScheduleTriggerExecutor(BaseExecutor):
    types = (NodeType.SCHEDULE_TRIGGER,)

    def execute(self, node, input_data, ctx):
        config: ScheduleTriggerConfig = node.config
        return NodeOutput(json={
            "firedAt": utc_now_iso(),
            "timezone": config.timezone,
            "preset": config.preset,
            "cron": config.cron if config.preset == "custom" else CRON_PRESETS[config.preset],
        })


class TelegramTriggerExecutor(BaseExecutor):
    """Sample incoming bot message."""

    types = (NodeType.TELEGRAM_TRIGGER,)

    def execute(self, node, input_data, ctx):
        return NodeOutput(json={
            "update_id": 1,
            "message": {
                "message_id": 1,
                "from": {"id": 1, "is_bot": False, "first_name": "Test", "username": "test_user"},
                "chat": {"id": 1, "type": "private", "first_name": "Test"},
                "date": 0,
                "text": "Hello from Telegram",
            },
        })


# ==============================================================================
# HTTP Request
# ==============================================================================

class HttpRequestExecutor(BaseExecutor):
    """
    Resolves every templated field, then sends one request.

    Auth is applied from authConfig: bearer (token), basic
    (username/password) or api_key (keyName/keyValue, in a header unless
    placement is "query"). The body is only sent for non-GET methods.
    """

    types = (NodeType.HTTP_REQUEST,)

    def execute(self, node, input_data, ctx):
        raw: HttpRequestConfig = node.config
        cfg = resolve_config(raw.model_dump(by_alias=True), ctx)

        url = to_display_string(cfg["url"]).strip()
        if not url:
            raise NodeExecutionError("URL is required", node_id=node.id)

        headers: Dict[str, str] = {}
        for row in cfg["headers"]:
            key = to_display_string(row["key"]).strip()
            if key:
                headers[key] = to_display_string(row["value"])

        params: List[Tuple[str, str]] = []
        for row in cfg["queryParams"]:
            key = to_display_string(row["key"]).strip()
            if key:
                params.append((key, to_display_string(row["value"])))

        auth_config = {k: to_display_string(v) for k, v in (cfg.get("authConfig") or {}).items()}
        auth = None
        auth_type = cfg["authType"]
        if auth_type == "bearer" and auth_config.get("token"):
            headers["Authorization"] = f"Bearer {auth_config['token']}"
        elif auth_type == "basic" and auth_config.get("username"):
            auth = (auth_config["username"], auth_config.get("password", ""))
        elif auth_type == "api_key" and auth_config.get("keyName"):
            if auth_config.get("placement") == "query":
                params.append((auth_config["keyName"], auth_config.get("keyValue", "")))
            else:
                headers[auth_config["keyName"]] = auth_config.get("keyValue", "")

        body: Optional[str] = None
        raw_body = cfg.get("body")
        if raw.method != "GET" and raw_body not in (None, ""):
            body = raw_body if isinstance(raw_body, str) else json.dumps(raw_body)
            has_content_type = any(k.lower() == "content-type" for k in headers)
            if cfg["bodyType"] == "json" and not has_content_type:
                headers["Content-Type"] = "application/json"
            elif cfg["bodyType"] == "form":
                headers["Content-Type"] = "application/x-www-form-urlencoded"

        response = self.runtime.http.request(
            raw.method,
            url,
            params=params,
            data=body.encode("utf-8") if body is not None else None,
            headers=headers,
            auth=auth,
            timeout_ms=raw.timeout,
            node_id=node.id,
        )
        response.raise_for_status(node_id=node.id)
        return NodeOutput(
            json=response.body(),
            status_code=response.status_code,
            response_headers=response.headers,
        )


# ==============================================================================
# Flow control
# ==============================================================================

def get_path(value: Any, path: str) -> Any:
    """Follow a dotted property path ("user.address.city", "items.0")."""
    current = value
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def to_number(value: Any) -> float:
    """JavaScript Number(): blank strings are 0; None and anything unparsable are NaN."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


class IfConditionExecutor(BaseExecutor):
    """
    Evaluates the condition rows and records the branch taken.

    A field with no placeholder is read as a property path on the input.
    The input passes through unchanged.
    """

    types = (NodeType.IF_CONDITION,)

    def _field_value(self, row: ConditionRow, input_data: Any, ctx: ExpressionContext) -> Any:
        if has_placeholder(row.field):
            return resolve_template(row.field, ctx)
        return get_path(input_data, row.field.strip())

    def evaluate_row(self, node_id: str, row: ConditionRow, input_data: Any, ctx: ExpressionContext) -> bool:
        field_value = self._field_value(row, input_data, ctx)
        compare = resolve_template(row.value, ctx)
        op = row.operation

        if op == "equals":
            return to_display_string(field_value) == to_display_string(compare)
        if op == "not_equals":
            return to_display_string(field_value) != to_display_string(compare)
        if op == "contains":
            return to_display_string(compare) in to_display_string(field_value)
        if op == "greater_than":
            return to_number(field_value) > to_number(compare)
        if op == "less_than":
            return to_number(field_value) < to_number(compare)
        if op == "is_empty":
            return field_value is None or field_value == ""
        if op == "is_not_empty":
            return field_value is not None and field_value != ""
        if op == "regex":
            try:
                pattern = re.compile(to_display_string(compare))
            except re.error as e:
                raise NodeExecutionError(f"Invalid regular expression '{compare}': {e}", node_id=node_id)
            return pattern.search(to_display_string(field_value)) is not None
        return False

    def execute(self, node, input_data, ctx):
        config: IfConditionConfig = node.config
        results = [self.evaluate_row(node.id, row, input_data, ctx) for row in config.conditions]
        passed = all(results) if config.combinator == "AND" else any(results)
        return NodeOutput(
            json=input_data,
            branch_taken=Handle.TRUE.value if passed else Handle.FALSE.value,
        )


class LoopExecutor(BaseExecutor):
    """Preview only: reports the iteration count and the first item."""

    types = (NodeType.LOOP,)

    def execute(self, node, input_data, ctx):
        config: LoopConfig = node.config

        if config.mode == "count":
            resolved = resolve_template(config.count or "1", ctx)
            number = to_number(resolved)
            count = int(number) if math.isfinite(number) and number >= 1 else 1
            return NodeOutput(
                json={
                    "mode": "count",
                    "totalIterations": count,
                    "note": f"Test shows iteration 0 of {count}",
                },
                preview_item={"index": 0},
                preview_index=0,
            )

        resolved = resolve_template(config.source or "", ctx)
        if isinstance(resolved, list):
            items = resolved
        elif resolved not in (None, "", 0, False):
            items = [resolved]
        elif isinstance(input_data, list):
            items = input_data
        else:
            items = [{"sample": "item"}]
        first = items[0] if items else None

        return NodeOutput(
            json={
                "mode": "forEach",
                "totalItems": len(items),
                "note": f"Test shows iteration 0 of {len(items)}",
                "previewItem": first,
            },
            preview_item=first,
            preview_index=0,
        )


class WaitExecutor(BaseExecutor):
    types = (NodeType.WAIT,)

    def execute(self, node, input_data, ctx):
        config: WaitConfig = node.config
        if config.mode == "duration":
            waited = f"{to_display_string(config.duration_value)} {config.duration_unit or ''}".strip()
        else:
            waited = "webhook resume"
        return NodeOutput(json={
            "skippedWait": True,
            "note": "Wait is skipped in test mode",
            "wouldHaveWaited": waited,
        })


class MergeExecutor(BaseExecutor):
    """
    append wraps whatever arrived into one list, choose_branch passes it
    through and combine_by_key keeps the last item per key value.
    """

    types = (NodeType.MERGE,)

    def execute(self, node, input_data, ctx):
        config: MergeConfig = node.config
        if config.strategy == "choose_branch":
            return NodeOutput(json=input_data)

        items = list(input_data) if isinstance(input_data, list) else [input_data]
        if config.strategy == "combine_by_key":
            key = config.key_field or "id"
            merged: Dict[str, Any] = {}
            for item in items:
                if isinstance(item, dict):
                    merged[to_display_string(item.get(key))] = item
            return NodeOutput(json=list(merged.values()))

        return NodeOutput(json=items)


# ==============================================================================
# Actions
# ==============================================================================

class SetTransformExecutor(BaseExecutor):
    types = (NodeType.SET_TRANSFORM,)

    def execute(self, node, input_data, ctx):
        config: SetTransformConfig = node.config
        return NodeOutput(json={
            field.name: resolve_template(field.value, ctx)
            for field in config.fields
            if field.name.strip()
        })


class CodeExecutor(BaseExecutor):
    """Runs the user's code in the sandbox with pre-resolved input mappings."""

    types = (NodeType.CODE,)

    def execute(self, node, input_data, ctx):
        config: CodeConfig = node.config
        mappings: Dict[str, Any] = {}
        for mapping in config.input_mappings:
            name = mapping.name.strip()
            if not name:
                continue
            if not name.isidentifier():
                raise NodeExecutionError(f"'{name}' is not a valid variable name", node_id=node.id)
            mappings[name] = resolve_template(mapping.expression, ctx)

        outcome = self.runtime.sandbox.run(
            config.code,
            input=input_data,
            steps=ctx.steps,
            item=ctx.item,
            index=ctx.index,
            now=ctx.now or utc_now_iso(),
            mappings=mappings,
            node_id=node.id,
        )
        return NodeOutput(json=outcome.result)


class IntegrationActionExecutor(BaseExecutor):
    """
    Integration actions need real credentials and side effects, so a test
    run only shows what would be sent.
    """

    types = (
        NodeType.TELEGRAM_SEND_MESSAGE,
        NodeType.GOOGLE_SHEETS_APPEND,
        NodeType.GOOGLE_SHEETS_READ,
    )

    def execute(self, node, input_data, ctx):
        config: IntegrationConfig = node.config
        fields = config.model_dump(by_alias=True, exclude={"credential_id"})
        return NodeOutput(json={
            "dryRun": True,
            "action": node.type.value,
            "config": resolve_config(fields, ctx),
            "note": "Integration steps are not executed in test mode",
        })


# Node executors by type
EXECUTORS: Dict[NodeType, Type[BaseExecutor]] = {
    node_type: cls
    for cls in (
        ManualTriggerExecutor,
        WebhookTriggerExecutor,
        ScheduleTriggerExecutor,
        TelegramTriggerExecutor,
        HttpRequestExecutor,
        IfConditionExecutor,
        LoopExecutor,
        WaitExecutor,
        MergeExecutor,
        SetTransformExecutor,
        CodeExecutor,
        IntegrationActionExecutor,
    )
    for node_type in cls.types
}


def run_node(
    node: WorkflowNode,
    input_data: Any,
    ctx: ExpressionContext,
    runtime: Optional[ExecutorRuntime] = None,
) -> NodeOutput:
    """Dispatch a node to its executor."""
    executor_cls = EXECUTORS.get(node.type)
    if executor_cls is None:
        raise NodeExecutionError(f"Node type '{node.type.value}' has no executor", node_id=node.id)
    executor = executor_cls(runtime or ExecutorRuntime.from_settings())
    return executor.execute(node, input_data, ctx)


__all__ = [
    "ExecutorRuntime",
    "BaseExecutor",
    "EXECUTORS",
    "run_node",
    "get_path",
    "to_number",
]
