#!/usr/bin/env python3
"""
Webhook notifier - posts run summaries to an external endpoint
"""

import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """POSTs JSON payloads to a webhook; delivery failures are logged, never raised"""

    def __init__(self, url: Optional[str], timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def send(self, title: str, payload: Dict) -> bool:
        if not self.enabled:
            logger.debug("🔕 Webhook not configured, skipping notification")
            return False

        try:
            response = requests.post(
                self.url,
                json={'title': title, 'summary': payload},
                timeout=self.timeout,
            )
            if response.status_code < 300:
                logger.info(f"📨 Notification sent: {title}")
                return True
            logger.warning(f"⚠️ Webhook returned {response.status_code}: {response.text[:200]}")
        except requests.RequestException as e:
            logger.error(f"❌ Webhook error: {e}")
        return False
