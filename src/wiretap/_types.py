"""Shared type definitions for wiretap."""

from typing import Any, Literal, TypeAlias

# Severity of a captured log record
LogLevel: TypeAlias = Literal["log", "info", "warn", "error", "debug"]

# Normalized HTTP method of a captured call
HttpMethod: TypeAlias = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "UNKNOWN"]

# Which capture mechanism produced a network record
NetworkSource: TypeAlias = Literal["http", "https", "manual"]

# One of the two independently pausable event streams
Channel: TypeAlias = Literal["logs", "network"]

# What a clear applies to
ClearTarget: TypeAlias = Literal["logs", "network", "all"]

# Collector notification kinds
NotificationKind: TypeAlias = Literal["log", "network", "clear", "status"]

# Observer connection identifier
ClientID: TypeAlias = str

# A JSON-serializable protocol message
Message: TypeAlias = dict[str, Any]

