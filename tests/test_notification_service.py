"""
Unit tests for the marketplace backend webhook clients.
"""
import pytest
import requests
from unittest.mock import Mock, patch
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.middleware.error_handling import ErrorCode, ExternalServiceException
from app.services.notification_service import (
    WebhookConversationService,
    WebhookNotificationService,
)

BACKEND = "http://backend.local/api/v1/"


def response(status_code=200, body=None):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body or {}
    return mock_response


class TestConversationService:
    """Tests for conversation creation on accepted matches."""

    def test_unconfigured_returns_local_reference(self):
        service = WebhookConversationService(backend_url="")
        with patch('requests.post') as mock_post:
            ref = service.create_for_match("m-1", ["a", "b"])
        assert ref.id
        mock_post.assert_not_called()

    def test_posts_match_and_participants(self):
        service = WebhookConversationService(backend_url=BACKEND, api_key="secret")
        with patch('requests.post', return_value=response(201, {"conversation_id": "conv-9"})) as mock_post:
            ref = service.create_for_match("m-1", ["a", "b"])

        assert ref.id == "conv-9"
        url = mock_post.call_args.args[0]
        kwargs = mock_post.call_args.kwargs
        assert url == "http://backend.local/api/v1/webhooks/match-conversations"
        assert kwargs["json"] == {"match_id": "m-1", "participant_ids": ["a", "b"]}
        assert kwargs["headers"]["X-API-KEY"] == "secret"

    def test_accepts_id_key(self):
        service = WebhookConversationService(backend_url=BACKEND)
        with patch('requests.post', return_value=response(200, {"id": 42})):
            assert service.create_for_match("m-1", ["a", "b"]).id == "42"

    def test_error_status_raises(self):
        service = WebhookConversationService(backend_url=BACKEND)
        with patch('requests.post', return_value=response(500)):
            with pytest.raises(ExternalServiceException) as exc_info:
                service.create_for_match("m-1", ["a", "b"])
        assert exc_info.value.code == ErrorCode.EXTERNAL_API_ERROR

    def test_missing_id_raises(self):
        service = WebhookConversationService(backend_url=BACKEND)
        with patch('requests.post', return_value=response(200, {"ok": True})):
            with pytest.raises(ExternalServiceException):
                service.create_for_match("m-1", ["a", "b"])

    def test_connection_error_raises(self):
        service = WebhookConversationService(backend_url=BACKEND)
        with patch('requests.post', side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(ExternalServiceException):
                service.create_for_match("m-1", ["a", "b"])


class TestNotificationService:
    """Tests for match event notifications."""

    EVENT = {"type": "match_accepted", "match_id": "m-1"}

    def test_unconfigured_skips(self):
        service = WebhookNotificationService(backend_url="")
        result = service.notify("a", self.EVENT)
        assert result["success"] is False

    def test_success(self):
        service = WebhookNotificationService(backend_url=BACKEND)
        with patch('requests.post', return_value=response(200)) as mock_post:
            result = service.notify("a", self.EVENT)

        assert result["success"] is True
        assert mock_post.call_args.kwargs["json"] == {"user_id": "a", "event": self.EVENT}
        assert "X-API-KEY" in mock_post.call_args.kwargs["headers"]

    def test_timeout_reported(self):
        service = WebhookNotificationService(backend_url=BACKEND)
        with patch('requests.post', side_effect=requests.exceptions.Timeout()):
            result = service.notify("a", self.EVENT)
        assert result == {"success": False, "message": "Request timeout"}

    def test_error_status_reported(self):
        service = WebhookNotificationService(backend_url=BACKEND)
        with patch('requests.post', return_value=response(404)):
            result = service.notify("a", self.EVENT)
        assert result["success"] is False
        assert result["status_code"] == 404

    def test_reads_environment(self):
        with patch.dict(os.environ, {'MARKETPLACE_BACKEND_URL': BACKEND}):
            assert WebhookNotificationService().is_configured() is True
