"""FastAPI application exposing the mailbox operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, status as http_status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from ..core import AppSettings, load_app_settings
from ..core.datetime_utils import serialize_datetime
from ..core.errors import AuthError, MailError, NetworkError, OperationTimeout
from ..core.interfaces import MessageRepository
from ..core.models import CleanupReport, FetchReport, MessageStatus, StoredMessage
from ..intelligence import (
    PENDING_BATCH_SIZE,
    AnalysisError,
    AutoReplyReport,
    AutoReplyWorkflow,
)
from ..mailbox import compile_criteria
from ..service import MailboxService
from ..storage import SqliteMessageRepository

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

LOGGER = logging.getLogger(__name__)


class FetchRequest(BaseModel):
    """Body accepted by the fetch route."""

    limit: int | None = Field(default=None, ge=1, le=500)
    search_criteria: list[str | list[str]] | None = None

    @field_validator("search_criteria")
    @classmethod
    def check_criteria(cls, value: list[str | list[str]] | None) -> Any:
        """Reject keys and values that cannot be sent as one SEARCH command."""
        if value is not None:
            compile_criteria(value)
        return value


class CleanupRequest(BaseModel):
    """Body accepted by the cleanup route."""

    categories: list[str] | None = None


class StatusUpdate(BaseModel):
    """Body accepted by the status route."""

    status: MessageStatus


class ReplyRequest(BaseModel):
    """Body accepted by the manual reply route."""

    body: str = Field(min_length=1)


def create_app(
    settings: AppSettings | None = None,
    *,
    service: MailboxService | None = None,
    repository: MessageRepository | None = None,
    workflow: AutoReplyWorkflow | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    # pylint: disable=too-many-locals,too-many-statements
    app_settings = settings or load_app_settings()
    owns_repository = repository is None
    store = repository or SqliteMessageRepository(app_settings.storage)
    mailbox = service or MailboxService(app_settings, store)
    replies = workflow or AutoReplyWorkflow.from_settings(app_settings, store)
    app = FastAPI(title="Inbox Triage")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Close the repository on app shutdown."""
        if owns_repository:
            store.close()
            LOGGER.info("Message repository closed")

    @app.exception_handler(MailError)
    async def mail_error_handler(_: Request, exc: MailError) -> JSONResponse:
        status_code = _status_for(exc)
        LOGGER.error("Request failed with %s: %s", type(exc).__name__, exc)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "message": str(exc), "hint": exc.hint},
        )

    @app.exception_handler(AnalysisError)
    async def analysis_error_handler(_: Request, exc: AnalysisError) -> JSONResponse:
        LOGGER.error("Reply drafting failed: %s", exc)
        return JSONResponse(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "message": str(exc), "hint": None},
        )

    def owned_message(record_id: int) -> StoredMessage:
        owner = mailbox.configured_credentials().owner
        record = store.get(record_id, owner_id=owner)
        if record is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND, detail="Message not found"
            )
        return record

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Report that the app is up."""
        return {"status": "ok"}

    @app.post("/api/mail/fetch")
    async def fetch_mail(payload: FetchRequest | None = None) -> dict[str, Any]:
        """Fetch new mail for the configured account and store it."""
        request = payload or FetchRequest()
        credentials = mailbox.configured_credentials()
        report = await asyncio.to_thread(
            mailbox.fetch_new_mail,
            credentials,
            limit=request.limit,
            search_criteria=request.search_criteria,
        )
        body = _serialize_fetch(report)
        if replies.active:
            # Sweeps earlier leftovers too, not only what this fetch stored.
            batch = max(PENDING_BATCH_SIZE, len(report.stored))
            try:
                outcome = await asyncio.to_thread(
                    replies.process_pending, credentials.owner, limit=batch
                )
            except MailError as exc:
                LOGGER.error("Auto-reply run failed: %s", exc)
                body["auto_reply"] = {"error": str(exc), "hint": exc.hint}
            else:
                body["auto_reply"] = _serialize_replies(outcome)
        return body

    @app.delete("/api/mail/cleanup")
    async def cleanup_mail(payload: CleanupRequest | None = None) -> dict[str, Any]:
        """Delete mail in the requested categories."""
        request = payload or CleanupRequest()
        credentials = mailbox.configured_credentials()
        report = await asyncio.to_thread(
            mailbox.cleanup_by_category, credentials, request.categories
        )
        return _serialize_cleanup(report)

    @app.post("/api/mail/verify")
    async def verify_connection() -> dict[str, Any]:
        """Check that the configured account can log in."""
        credentials = mailbox.configured_credentials()
        await asyncio.to_thread(mailbox.verify_connection, credentials)
        return {"success": True, "message": "IMAP connection successful"}

    @app.post("/api/mail/test-email")
    async def send_test_email() -> dict[str, Any]:
        """Send a test message to the configured account."""
        credentials = mailbox.configured_credentials()
        receipt = await asyncio.to_thread(replies.send_test_email, credentials.address)
        return {
            "success": True,
            "message": "Test email sent successfully",
            "message_id": receipt.message_id,
        }

    @app.get("/api/messages")
    async def list_messages(
        status: MessageStatus | None = None,
        limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
        skip: int = Query(default=0, ge=0),
    ) -> dict[str, Any]:
        """List stored messages for the configured account, newest first."""
        owner = mailbox.configured_credentials().owner
        records = store.list_messages(owner, status=status, limit=limit, offset=skip)
        return {
            "messages": [_serialize_message(record) for record in records],
            "total": store.count_by_owner(owner, status=status),
        }

    @app.get("/api/messages/{record_id}")
    async def get_message(record_id: int) -> dict[str, Any]:
        """Return one stored message."""
        return _serialize_message(owned_message(record_id))

    @app.patch("/api/messages/{record_id}/status")
    async def update_status(record_id: int, payload: StatusUpdate) -> dict[str, Any]:
        """Set the lifecycle status of a stored message."""
        record = owned_message(record_id)
        record.status = payload.status
        store.update(record)
        return _serialize_message(record)

    @app.delete("/api/messages/{record_id}")
    async def delete_message(record_id: int) -> dict[str, Any]:
        """Remove the local record; the server copy is left alone."""
        owner = mailbox.configured_credentials().owner
        if not store.delete(record_id, owner_id=owner):
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND, detail="Message not found"
            )
        return {"success": True, "message": "Message deleted"}

    @app.post("/api/messages/{record_id}/reply")
    async def reply_to_message(record_id: int, payload: ReplyRequest) -> dict[str, Any]:
        """Send a reply written by the user."""
        record = owned_message(record_id)
        updated = await asyncio.to_thread(replies.reply_to, record, payload.body)
        return {"success": True, "message": _serialize_message(updated)}

    @app.post("/api/agent/generate-reply/{record_id}")
    async def generate_reply(record_id: int) -> dict[str, Any]:
        """Draft a reply without sending it."""
        record = owned_message(record_id)
        draft = await asyncio.to_thread(replies.draft_for, record)
        return {"success": True, "reply": draft}

    @app.post("/api/agent/process-pending")
    async def process_pending(
        limit: int = Query(default=PENDING_BATCH_SIZE, ge=1, le=MAX_LIMIT),
    ) -> dict[str, Any]:
        """Run the auto-reply workflow over messages still pending."""
        if not replies.active:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="Auto-reply agent is not enabled",
            )
        owner = mailbox.configured_credentials().owner
        outcome = await asyncio.to_thread(replies.process_pending, owner, limit=limit)
        return {"success": True, **_serialize_replies(outcome)}

    @app.get("/api/agent/stats")
    async def agent_stats() -> dict[str, Any]:
        """Summarise stored messages by status and category."""
        owner = mailbox.configured_credentials().owner
        return {
            "status_counts": store.status_counts(owner),
            "category_counts": store.category_counts(owner),
            "total": store.count_by_owner(owner),
        }

    return app


def _status_for(exc: MailError) -> int:
    if isinstance(exc, AuthError):
        return http_status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, OperationTimeout):
        return http_status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, NetworkError):
        return http_status.HTTP_502_BAD_GATEWAY
    return http_status.HTTP_500_INTERNAL_SERVER_ERROR


def _serialize_message(record: StoredMessage) -> dict[str, Any]:
    return {
        "id": record.id,
        "message_id": record.message_id,
        "from": record.sender,
        "to": record.recipient,
        "subject": record.subject,
        "body": record.body,
        "in_reply_to": record.in_reply_to,
        "status": record.status.value,
        "sentiment": record.sentiment,
        "category": record.category,
        "ai_response": record.ai_response,
        "auto_reply": record.auto_reply,
        "received_at": serialize_datetime(record.received_at),
        "replied_at": serialize_datetime(record.replied_at),
        "created_at": serialize_datetime(record.created_at),
    }


def _serialize_replies(report: AutoReplyReport) -> dict[str, int]:
    return {
        "processed": report.processed,
        "replied": report.replied,
        "failed": report.failed,
    }


def _serialize_fetch(report: FetchReport) -> dict[str, Any]:
    return {
        "success": True,
        "folder": report.folder,
        "count": len(report.stored),
        "matched": report.matched,
        "duplicates": report.duplicates,
        "failures": report.failures,
        "messages": [_serialize_message(record) for record in report.stored],
    }


def _serialize_cleanup(report: CleanupReport) -> dict[str, Any]:
    return {
        "success": report.interrupted is None,
        "deleted_counts": report.deleted_counts,
        "total_deleted": report.total_deleted,
        "interrupted": report.interrupted,
        "folders": [
            {
                "category": outcome.category,
                "folder": outcome.folder.path,
                "status": outcome.status.value,
                "deleted": outcome.deleted,
                "stage": outcome.stage,
                "error": outcome.error,
            }
            for outcome in report.outcomes
        ],
    }


__all__ = [
    "CleanupRequest",
    "FetchRequest",
    "ReplyRequest",
    "StatusUpdate",
    "create_app",
]
