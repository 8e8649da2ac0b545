"""In-process counters served by GET /metrics."""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ServerMetrics:
    """Counters for tool calls, protocol errors and SSE connections."""

    started_at: float = field(default_factory=time.time)
    tool_calls: int = 0
    tool_failures: int = 0
    tool_timeouts: int = 0
    errors_by_code: Counter = field(default_factory=Counter)
    connections_opened: int = 0
    connections_closed: int = 0
    connections_rejected: int = 0
    active_connections: int = 0

    def record_error(self, code: int) -> None:
        self.errors_by_code[code] += 1

    def snapshot(self) -> dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self.started_at, 3),
            "tools": {
                "calls": self.tool_calls,
                "failures": self.tool_failures,
                "timeouts": self.tool_timeouts,
            },
            "errors": {str(code): count for code, count in sorted(self.errors_by_code.items())},
            "connections": {
                "active": self.active_connections,
                "opened": self.connections_opened,
                "closed": self.connections_closed,
                "rejected": self.connections_rejected,
            },
        }
