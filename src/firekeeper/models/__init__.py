"""firekeeper ドメインモデルパッケージ。"""

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.config import LlmConfig, ReviewConfig, ReviewSettings
from firekeeper.models.exit_code import ExitCode
from firekeeper.models.outcome import ErrorKind, TaskAborted, TaskOutcome, TaskReported
from firekeeper.models.resource import ResourceBlock, ResourceKind, parse_resource_uri
from firekeeper.models.rule import RuleBody
from firekeeper.models.schema_version import (
    SCHEMA_VERSION,
    SchemaVersionError,
    check_schema_version,
)
from firekeeper.models.summary import ReviewSummary
from firekeeper.models.task import ChangeSet, ReviewTask
from firekeeper.models.trace import (
    MessageRole,
    TimedMessage,
    ToolCallRecord,
    ToolSpec,
    TraceEntry,
    TraceFile,
)
from firekeeper.models.violation import Violation, ViolationFile

__all__ = [
    "ChangeSet",
    "ErrorKind",
    "ExitCode",
    "FirekeeperBaseModel",
    "LlmConfig",
    "MessageRole",
    "ResourceBlock",
    "ResourceKind",
    "ReviewConfig",
    "ReviewSettings",
    "ReviewSummary",
    "ReviewTask",
    "RuleBody",
    "SCHEMA_VERSION",
    "SchemaVersionError",
    "TaskAborted",
    "TaskOutcome",
    "TaskReported",
    "TimedMessage",
    "ToolCallRecord",
    "ToolSpec",
    "TraceEntry",
    "TraceFile",
    "Violation",
    "ViolationFile",
    "check_schema_version",
    "parse_resource_uri",
]
