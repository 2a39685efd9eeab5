"""
Webhook clients for the marketplace backend: conversation creation and
match notifications. The backend owns delivery; this service only posts
events to it.
"""
from typing import Dict, Any, List, Optional
import requests
import os
import uuid
import logging

from app.middleware.error_handling import ExternalServiceException
from app.services.ports import ConversationRef

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = int(os.getenv('WEBHOOK_TIMEOUT_SECONDS', '30'))


class _WebhookClient:
    """Shared configuration for marketplace backend webhooks."""

    def __init__(self, backend_url: Optional[str] = None, api_key: Optional[str] = None):
        self.backend_url = backend_url if backend_url is not None else os.getenv('MARKETPLACE_BACKEND_URL')
        self.webhook_api_key = api_key if api_key is not None else os.getenv('WEBHOOK_API_KEY')

    def is_configured(self) -> bool:
        """Check if backend URL is configured."""
        return bool(self.backend_url)

    def _get_headers(self) -> dict:
        """Get headers for webhook requests including API key if configured."""
        headers = {"Content-Type": "application/json"}
        if self.webhook_api_key:
            headers["X-API-KEY"] = self.webhook_api_key
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> requests.Response:
        # backend_url already contains the /api/v1 suffix
        endpoint = f"{self.backend_url.rstrip('/')}{path}"
        return requests.post(
            endpoint,
            json=payload,
            timeout=WEBHOOK_TIMEOUT_SECONDS,
            headers=self._get_headers()
        )


class WebhookConversationService(_WebhookClient):
    """Asks the backend to open a conversation for an accepted match."""

    def create_for_match(self, match_id: str, participant_ids: List[str]) -> ConversationRef:
        if not self.is_configured():
            # Local development: hand out a reference so the match can still be exercised
            conversation_id = str(uuid.uuid4())
            logger.warning(f"Backend URL not configured, using local conversation {conversation_id} for match {match_id}")
            return ConversationRef(id=conversation_id)

        payload = {"match_id": match_id, "participant_ids": participant_ids}
        logger.info(f"Requesting conversation for match {match_id}")

        try:
            response = self._post("/webhooks/match-conversations", payload)
        except requests.exceptions.RequestException as e:
            raise ExternalServiceException("marketplace-backend", f"conversation request failed: {e}", original_error=e)

        if response.status_code not in (200, 201):
            raise ExternalServiceException(
                "marketplace-backend",
                f"conversation request returned {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceException("marketplace-backend", "invalid conversation response", original_error=e)

        conversation_id = data.get("conversation_id") or data.get("id")
        if not conversation_id:
            raise ExternalServiceException("marketplace-backend", "conversation response missing id")
        return ConversationRef(id=str(conversation_id))


class WebhookNotificationService(_WebhookClient):
    """Posts match events to the backend, which delivers them to users."""

    def notify(self, user_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured():
            logger.warning(f"Backend URL not configured, skipping {event.get('type')} notification for user {user_id}")
            return {"success": False, "message": "Backend URL not configured"}

        payload = {"user_id": user_id, "event": event}
        # SECURITY: Don't log payloads or headers
        logger.info(f"Sending {event.get('type')} notification for user {user_id}")

        try:
            response = self._post("/webhooks/match-events", payload)
        except requests.exceptions.Timeout:
            logger.error(f"Timeout sending notification for user {user_id}")
            return {"success": False, "message": "Request timeout"}
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error sending notification for user {user_id}: {str(e)}")
            return {"success": False, "message": f"Request error: {str(e)}"}

        if response.status_code == 200:
            logger.info(f"Successfully notified backend for user {user_id}")
            return {"success": True, "status_code": response.status_code}

        logger.error(f"Failed to notify backend for user {user_id}: {response.status_code}")
        return {
            "success": False,
            "message": f"Backend returned status {response.status_code}",
            "status_code": response.status_code
        }
