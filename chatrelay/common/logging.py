"""Process-wide structured logger.

Callers log dicts (``logger.info({"component": ..., "event": ...})``);
Powertools renders them as JSON under the ``message`` key.
"""

from __future__ import annotations

import os

from aws_lambda_powertools import Logger

SERVICE_NAME = os.getenv("POWERTOOLS_SERVICE_NAME", "chatrelay")

logger = Logger(service=SERVICE_NAME, level=os.getenv("LOG_LEVEL", "INFO"))
