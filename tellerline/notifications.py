"""
Notification Port Module

The service raises best-effort alerts (for example on large transactions)
through a NotificationPort. Delivery itself belongs to external systems;
this module only defines the port and two thin adapters.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

import requests

from .logging_config import get_logger


class NotificationPort(ABC):
    """Abstract outbound notification channel"""

    @abstractmethod
    def notify(self, message: str) -> None:
        """Deliver a message. Implementations may raise; callers treat delivery as best-effort."""
        pass


class LogNotifier(NotificationPort):
    """Writes notifications to the log"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("tellerline.notifications")

    def notify(self, message: str) -> None:
        self.logger.info("[NOTIFICATION] %s", message)


class WebhookNotifier(NotificationPort):
    """Posts notifications as JSON to an HTTP endpoint"""

    def __init__(self, url: str, timeout: float = 5.0,
                 headers: Optional[Dict[str, str]] = None):
        if not url:
            raise ValueError("Webhook URL is required")
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if headers:
            self.headers.update(headers)

    def notify(self, message: str) -> None:
        """
        Send the message via webhook POST

        Raises:
            requests.RequestException: On connection errors or non-2xx responses
        """
        payload = {
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        response = requests.post(
            self.url,
            json=payload,
            timeout=self.timeout,
            headers=self.headers
        )
        response.raise_for_status()
