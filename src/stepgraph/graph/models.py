"""
Graph Models - value types for workflow graphs.

A Graph is the node/edge value for one workflow version. Every model
here is frozen: structural edits go through stepgraph.graph.mutator and
always produce a new Graph, so layout, numbering and dry-runs each see a
consistent snapshot.

The serialized form uses camelCase aliases (sourceHandle, onError, ...)
so a stored workflow round-trips through parse_graph()/Graph.to_dict().
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class NodeType(str, Enum):
    """Closed set of node type tags."""
    MANUAL_TRIGGER = "manual_trigger"
    WEBHOOK_TRIGGER = "webhook_trigger"
    SCHEDULE_TRIGGER = "schedule_trigger"
    TELEGRAM_TRIGGER = "telegram_trigger"
    HTTP_REQUEST = "http_request"
    IF_CONDITION = "if_condition"
    SET_TRANSFORM = "set_transform"
    CODE = "code"
    LOOP = "loop"
    WAIT = "wait"
    MERGE = "merge"
    TELEGRAM_SEND_MESSAGE = "telegram_send_message"
    GOOGLE_SHEETS_APPEND = "google_sheets_append"
    GOOGLE_SHEETS_READ = "google_sheets_read"


class NodeCategory(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    FLOW_CONTROL = "flow_control"
    INTEGRATION = "integration"


class NodeStatus(str, Enum):
    """Authoring status of a node."""
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    TESTED = "tested"
    ERROR = "error"


class EdgeKind(str, Enum):
    PLAIN = "plain"
    BRANCH = "branch"
    LOOP = "loop"


class Handle(str, Enum):
    """Named ports. Source handles select an output, target handles an input."""
    MAIN = "main"
    TRUE = "true"
    FALSE = "false"
    LOOP_BODY = "loopBody"
    LOOP_COMPLETE = "loopComplete"
    BRANCH_A = "branchA"
    BRANCH_B = "branchB"


# Output handles each node type may use; anything not listed only has "main"
SOURCE_HANDLES: Dict[NodeType, Tuple[str, ...]] = {
    NodeType.IF_CONDITION: (Handle.TRUE.value, Handle.FALSE.value),
    NodeType.LOOP: (Handle.LOOP_BODY.value, Handle.LOOP_COMPLETE.value),
}

EDGE_LABELS: Dict[str, str] = {
    Handle.TRUE.value: "True",
    Handle.FALSE.value: "False",
}


def edge_kind_for_handle(handle: Optional[str]) -> EdgeKind:
    """Edge kind implied by a source handle."""
    if handle in (Handle.TRUE.value, Handle.FALSE.value):
        return EdgeKind.BRANCH
    if handle in (Handle.LOOP_BODY.value, Handle.LOOP_COMPLETE.value):
        return EdgeKind.LOOP
    return EdgeKind.PLAIN


# ==============================================================================
# Config shapes - one per node type
# ==============================================================================

class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class KeyValue(_Config):
    key: str = ""
    value: str = ""


class ManualTriggerConfig(_Config):
    sample_data: Optional[str] = Field(None, alias="sampleData", description="JSON sample payload")


class WebhookTriggerConfig(_Config):
    path: str = ""
    method: Literal["GET", "POST", "ANY"] = "POST"
    response_mode: Literal["immediately", "after_workflow"] = Field("immediately", alias="responseMode")


class ScheduleTriggerConfig(_Config):
    preset: Literal["every_5m", "hourly", "daily", "weekly", "monthly", "custom"] = "daily"
    cron: Optional[str] = None
    timezone: str = "UTC"


class HttpRequestConfig(_Config):
    url: str = ""
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: List[KeyValue] = Field(default_factory=list)
    query_params: List[KeyValue] = Field(default_factory=list, alias="queryParams")
    body_type: Literal["json", "form", "raw"] = Field("json", alias="bodyType")
    body: Optional[str] = None
    auth_type: Literal["none", "bearer", "basic", "api_key"] = Field("none", alias="authType")
    auth_config: Dict[str, str] = Field(default_factory=dict, alias="authConfig")
    timeout: int = Field(5000, description="Timeout in milliseconds", gt=0)


ConditionOperation = Literal[
    "equals", "not_equals", "contains", "greater_than", "less_than",
    "is_empty", "is_not_empty", "regex",
]


class ConditionRow(_Config):
    id: str = ""
    field: str = ""
    operation: ConditionOperation = "equals"
    value: str = ""


class IfConditionConfig(_Config):
    combinator: Literal["AND", "OR"] = "AND"
    conditions: List[ConditionRow] = Field(default_factory=list)


class SetField(_Config):
    id: str = ""
    name: str = ""
    value: str = ""


class SetTransformConfig(_Config):
    fields: List[SetField] = Field(default_factory=list)


class InputMapping(_Config):
    name: str = ""
    expression: str = ""


class CodeConfig(_Config):
    code: str = "return input"
    input_mappings: List[InputMapping] = Field(default_factory=list, alias="inputMappings")


class LoopConfig(_Config):
    mode: Literal["forEach", "count"] = "forEach"
    source: Optional[str] = None
    count: Optional[str] = None
    batch_size: int = Field(1, alias="batchSize", ge=1)
    on_item_error: Literal["stopAll", "skipItem", "stopLoop"] = Field("stopAll", alias="onItemError")


class WaitConfig(_Config):
    mode: Literal["duration", "webhookResume"] = "duration"
    duration_value: Optional[float] = Field(None, alias="durationValue")
    duration_unit: Optional[Literal["seconds", "minutes", "hours"]] = Field(None, alias="durationUnit")
    max_wait_hours: Optional[float] = Field(None, alias="maxWaitHours")


class MergeConfig(_Config):
    strategy: Literal["append", "choose_branch", "combine_by_key"] = "append"
    key_field: Optional[str] = Field(None, alias="keyField")


class IntegrationConfig(_Config):
    """Integration steps carry a credential reference plus free-form fields."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    credential_id: Optional[str] = Field(None, alias="credentialId")


NodeConfig = Union[
    ManualTriggerConfig,
    WebhookTriggerConfig,
    ScheduleTriggerConfig,
    HttpRequestConfig,
    IfConditionConfig,
    SetTransformConfig,
    CodeConfig,
    LoopConfig,
    WaitConfig,
    MergeConfig,
    IntegrationConfig,
]

CONFIG_MODELS: Dict[NodeType, Type[_Config]] = {
    NodeType.MANUAL_TRIGGER: ManualTriggerConfig,
    NodeType.WEBHOOK_TRIGGER: WebhookTriggerConfig,
    NodeType.SCHEDULE_TRIGGER: ScheduleTriggerConfig,
    NodeType.TELEGRAM_TRIGGER: IntegrationConfig,
    NodeType.HTTP_REQUEST: HttpRequestConfig,
    NodeType.IF_CONDITION: IfConditionConfig,
    NodeType.SET_TRANSFORM: SetTransformConfig,
    NodeType.CODE: CodeConfig,
    NodeType.LOOP: LoopConfig,
    NodeType.WAIT: WaitConfig,
    NodeType.MERGE: MergeConfig,
    NodeType.TELEGRAM_SEND_MESSAGE: IntegrationConfig,
    NodeType.GOOGLE_SHEETS_APPEND: IntegrationConfig,
    NodeType.GOOGLE_SHEETS_READ: IntegrationConfig,
}


def parse_config(node_type: NodeType | str, config: Any) -> NodeConfig:
    """
    Build the config model for a node type.

    Raises ValueError (pydantic.ValidationError for mapping input) when the
    shape does not belong to the type.
    """
    config_cls = CONFIG_MODELS[NodeType(node_type)]
    if isinstance(config, config_cls):
        return config
    if isinstance(config, BaseModel):
        raise ValueError(
            f"config {type(config).__name__} does not belong to node type '{NodeType(node_type).value}'"
        )
    return config_cls.model_validate(config or {})


# ==============================================================================
# Node catalog
# ==============================================================================

@dataclass(frozen=True)
class NodeSpec:
    """Display metadata for a node type."""
    type: NodeType
    label: str
    category: NodeCategory
    description: str


NODE_CATALOG: Dict[NodeType, NodeSpec] = {
    spec.type: spec
    for spec in (
        NodeSpec(NodeType.MANUAL_TRIGGER, "Manual Trigger", NodeCategory.TRIGGER,
                 "Start this workflow manually"),
        NodeSpec(NodeType.WEBHOOK_TRIGGER, "Webhook", NodeCategory.TRIGGER,
                 "Trigger on incoming HTTP request"),
        NodeSpec(NodeType.SCHEDULE_TRIGGER, "Schedule / Cron", NodeCategory.TRIGGER,
                 "Run on a time-based schedule"),
        NodeSpec(NodeType.TELEGRAM_TRIGGER, "Telegram - Message", NodeCategory.INTEGRATION,
                 "Trigger when your Telegram bot gets a message"),
        NodeSpec(NodeType.HTTP_REQUEST, "HTTP Request", NodeCategory.ACTION,
                 "Make a request to any API endpoint"),
        NodeSpec(NodeType.SET_TRANSFORM, "Set / Transform", NodeCategory.ACTION,
                 "Create or transform data fields"),
        NodeSpec(NodeType.CODE, "Code", NodeCategory.ACTION,
                 "Run custom Python in a sandbox"),
        NodeSpec(NodeType.IF_CONDITION, "IF / Condition", NodeCategory.FLOW_CONTROL,
                 "Branch the flow based on conditions"),
        NodeSpec(NodeType.LOOP, "Loop", NodeCategory.FLOW_CONTROL,
                 "Iterate over a list or repeat N times"),
        NodeSpec(NodeType.WAIT, "Wait", NodeCategory.FLOW_CONTROL,
                 "Pause execution for a duration"),
        NodeSpec(NodeType.MERGE, "Merge", NodeCategory.FLOW_CONTROL,
                 "Combine outputs from parallel branches"),
        NodeSpec(NodeType.TELEGRAM_SEND_MESSAGE, "Telegram - Send Message", NodeCategory.INTEGRATION,
                 "Send a message via your Telegram bot"),
        NodeSpec(NodeType.GOOGLE_SHEETS_APPEND, "Google Sheets - Append", NodeCategory.INTEGRATION,
                 "Append a row to a Google Sheet"),
        NodeSpec(NodeType.GOOGLE_SHEETS_READ, "Google Sheets - Read", NodeCategory.INTEGRATION,
                 "Read rows from a Google Sheet"),
    )
}

TRIGGER_TYPES = frozenset({
    NodeType.MANUAL_TRIGGER,
    NodeType.WEBHOOK_TRIGGER,
    NodeType.SCHEDULE_TRIGGER,
    NodeType.TELEGRAM_TRIGGER,
})


# ==============================================================================
# Nodes, edges, graph
# ==============================================================================

class Position(BaseModel):
    """Top-left corner of a node on the canvas."""
    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """
    A step in the workflow graph.

    The shape of `config` is fixed by `type`; a mismatched pairing fails
    validation instead of being carried around.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: NodeType = Field(..., validation_alias=AliasChoices("type", "typeTag"))
    label: str = ""
    category: NodeCategory
    status: NodeStatus = NodeStatus.UNCONFIGURED
    config: NodeConfig
    position: Position = Field(default_factory=Position)

    # Error-handling settings, stored for the production runtime
    on_error: Optional[Literal["stop", "continue", "retry"]] = Field(None, alias="onError")
    retry_count: Optional[int] = Field(None, alias="retryCount", ge=0)
    retry_delay_ms: Optional[int] = Field(None, alias="retryDelayMs", ge=0)
    disabled: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fill_from_type(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_type = data.get("type", data.get("typeTag"))
        try:
            node_type = NodeType(raw_type)
        except ValueError:
            return data  # field validation reports the bad tag
        data["config"] = parse_config(node_type, data.get("config"))
        if not data.get("category"):
            data["category"] = NODE_CATALOG[node_type].category
        if not data.get("label"):
            data["label"] = NODE_CATALOG[node_type].label
        return data

    @model_validator(mode="after")
    def _check_config_type(self) -> "WorkflowNode":
        expected = CONFIG_MODELS[self.type]
        if type(self.config) is not expected:
            raise ValueError(
                f"config {type(self.config).__name__} does not belong to node type '{self.type.value}'"
            )
        return self

    @property
    def is_trigger(self) -> bool:
        return self.type in TRIGGER_TYPES


class WorkflowEdge(BaseModel):
    """
    Directed connection between two nodes.

    Example: {"id": "e1", "source": "if-1", "target": "n2", "sourceHandle": "true"}
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    source: str = Field(..., validation_alias=AliasChoices("source", "sourceNodeId"))
    target: str = Field(..., validation_alias=AliasChoices("target", "targetNodeId"))
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")
    kind: EdgeKind = Field(EdgeKind.PLAIN, validation_alias=AliasChoices("kind", "type"))
    label: Optional[str] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _default_kind(cls, v: Any) -> Any:
        return EdgeKind.PLAIN if v in (None, "", "default") else v

    @property
    def handle(self) -> str:
        """Source handle, with an absent handle meaning 'main'."""
        return self.source_handle or Handle.MAIN.value


class WorkflowSettings(BaseModel):
    """Workflow-level settings, passed through for the production runtime."""
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    timeout: Optional[int] = None
    error_mode: Literal["stop", "continue"] = Field("stop", alias="errorMode")


class Graph(BaseModel):
    """
    Complete workflow graph.

    Nodes keep insertion order; layout and numbering are pure functions
    of this value.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    nodes: Tuple[WorkflowNode, ...] = ()
    edges: Tuple[WorkflowEdge, ...] = ()
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Edges leaving a node, in storage order."""
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Edges entering a node, in storage order."""
        return [edge for edge in self.edges if edge.target == node_id]

    def replace_node(self, node: WorkflowNode) -> "Graph":
        """Return a new graph with the node of the same id swapped in."""
        if self.get_node(node.id) is None:
            raise KeyError(node.id)
        return self.model_copy(update={
            "nodes": tuple(node if n.id == node.id else n for n in self.nodes),
        })

    def with_positions(self, positions: Dict[str, Position]) -> "Graph":
        """Return a new graph with node positions replaced where given."""
        return self.model_copy(update={
            "nodes": tuple(
                n.model_copy(update={"position": positions[n.id]}) if n.id in positions else n
                for n in self.nodes
            ),
        })

    def with_statuses(self, statuses: Dict[str, NodeStatus]) -> "Graph":
        """Return a new graph with node statuses replaced where given."""
        return self.model_copy(update={
            "nodes": tuple(
                n.model_copy(update={"status": statuses[n.id]}) if n.id in statuses else n
                for n in self.nodes
            ),
        })

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_graph(data: Dict[str, Any]) -> Graph:
    """Parse graph JSON into a Graph."""
    return Graph.model_validate(data)


def new_node(
    node_type: NodeType | str,
    node_id: str,
    label: Optional[str] = None,
    config: Any = None,
    status: NodeStatus = NodeStatus.UNCONFIGURED,
) -> WorkflowNode:
    """Create a node with catalog defaults for its type."""
    node_type = NodeType(node_type)
    spec = NODE_CATALOG[node_type]
    return WorkflowNode(
        id=node_id,
        type=node_type,
        label=label or spec.label,
        category=spec.category,
        status=status,
        config=parse_config(node_type, config),
    )


__all__ = [
    "NodeType",
    "NodeCategory",
    "NodeStatus",
    "EdgeKind",
    "Handle",
    "SOURCE_HANDLES",
    "EDGE_LABELS",
    "edge_kind_for_handle",
    "KeyValue",
    "ManualTriggerConfig",
    "WebhookTriggerConfig",
    "ScheduleTriggerConfig",
    "HttpRequestConfig",
    "ConditionRow",
    "IfConditionConfig",
    "SetField",
    "SetTransformConfig",
    "InputMapping",
    "CodeConfig",
    "LoopConfig",
    "WaitConfig",
    "MergeConfig",
    "IntegrationConfig",
    "NodeConfig",
    "CONFIG_MODELS",
    "parse_config",
    "NodeSpec",
    "NODE_CATALOG",
    "TRIGGER_TYPES",
    "Position",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowSettings",
    "Graph",
    "parse_graph",
    "new_node",
]
