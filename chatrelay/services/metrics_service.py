from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

from ..common.logging import logger


class MetricsService:
    """Emits CloudWatch metrics using Embedded Metric Format (EMF).

    Metrics are extracted from the log line, so emitting one costs no extra
    AWS API call. Dimensions always include `channel` and `function`.
    """

    def __init__(self, *, namespace: Optional[str] = None) -> None:
        self.namespace = (namespace or os.getenv("METRICS_NAMESPACE") or "ChatRelay").strip() or "ChatRelay"
        self.function = (os.getenv("AWS_LAMBDA_FUNCTION_NAME") or "").strip() or "unknown"

    def incr(
        self,
        name: str,
        *,
        value: float = 1.0,
        unit: str = "Count",
        channel: Optional[str] = None,
        extra_dims: Optional[Dict[str, str]] = None,
        **fields: Any,
    ) -> Dict[str, Any]:
        """Emit a single metric datapoint; `fields` are plain log fields."""
        dims: Dict[str, str] = {
            "channel": (channel or "unknown"),
            "function": self.function,
        }
        for k, v in (extra_dims or {}).items():
            if v is not None:
                dims[str(k)] = str(v)

        payload: Dict[str, Any] = {
            **dims,
            name: value,
            **fields,
            "_aws": {
                "Timestamp": int(time.time() * 1000),
                "CloudWatchMetrics": [
                    {
                        "Namespace": self.namespace,
                        "Dimensions": [list(dims.keys())],
                        "Metrics": [{"Name": name, "Unit": unit}],
                    }
                ],
            },
        }
        logger.info(payload)
        return payload
