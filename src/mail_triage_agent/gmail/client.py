"""Gmail API implementation of the Mailbox protocol.

Notes:
    The Google API client is synchronous. This module wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    Calls are still issued one at a time; nothing here runs concurrently.
"""

from __future__ import annotations

import asyncio
import base64
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, TypeVar

import structlog

from mail_triage_agent.config import Settings
from mail_triage_agent.exceptions import AuthenticationError, ConfigurationError, GmailAPIError
from mail_triage_agent.gmail.parsing import reply_all_recipients, thread_to_mail_thread
from mail_triage_agent.models import MailMessage, MailThread

logger = structlog.get_logger()

T = TypeVar("T")


class GmailMailbox:
    """Gmail-backed mailbox for the triage pipeline.

    This client handles authentication, thread search, label resolution
    and the mutations applied by the orchestrators.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Gmail mailbox.

        Args:
            settings: Application settings.
        """

        self.settings = settings
        self._service: Any | None = None
        self._owner_address: str | None = None
        self._label_ids_by_name: dict[str, str] | None = None
        logger.info("gmail_mailbox_initialized")

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the credentials file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scopes = list(self.settings.gmail_scopes)

        if not credentials_path.exists() and not token_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Create an OAuth client in Google Cloud and download it there."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scopes=scopes,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scopes,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def get_owner_address(self) -> str:
        if self._owner_address is None:
            profile = await self._call("get_profile", self._get_profile_sync)
            self._owner_address = str(profile.get("emailAddress") or "")
        return self._owner_address

    async def search_threads(
        self,
        query: str,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[MailThread]:
        """Search threads and fetch them in full.

        Args:
            query: Gmail search query string.
            offset: Number of matching threads to skip.
            limit: Maximum number of threads to return.

        Returns:
            Matching threads, newest first as returned by Gmail.

        Raises:
            GmailAPIError: If the API request fails.
        """

        logger.info("searching_threads", query=query, offset=offset, limit=limit)

        owner = await self.get_owner_address()
        label_names = {v: k for k, v in (await self._label_ids()).items()}

        wanted = None if limit is None else offset + limit
        thread_ids = await self._call("list_threads", self._list_thread_ids_sync, query, wanted)
        thread_ids = thread_ids[offset:wanted]

        threads: list[MailThread] = []
        for thread_id in thread_ids:
            raw = await self._call("get_thread", self._get_thread_sync, thread_id)
            threads.append(
                thread_to_mail_thread(raw, owner_address=owner, label_names=label_names)
            )
        return threads

    async def add_label(self, thread_id: str, label_name: str) -> None:
        label_id = await self._resolve_label_id(label_name)
        await self._call(
            "add_label",
            self._modify_thread_sync,
            thread_id,
            [label_id],
            [],
        )

    async def mark_read(self, thread_id: str) -> None:
        await self._call("mark_read", self._modify_thread_sync, thread_id, [], ["UNREAD"])

    async def archive(self, thread_id: str) -> None:
        await self._call("archive", self._modify_thread_sync, thread_id, [], ["INBOX"])

    async def trash(self, thread_id: str) -> None:
        await self._call("trash", self._trash_thread_sync, thread_id)

    async def star(self, message_id: str) -> None:
        await self._call("star", self._modify_message_sync, message_id, ["STARRED"], [])

    async def create_draft_reply_all(
        self,
        thread: MailThread,
        message: MailMessage,
        *,
        body: str,
        html_body: str,
    ) -> str:
        """Create a reply-all draft in ``thread`` answering ``message``.

        Returns:
            The Gmail draft ID.
        """

        owner = await self.get_owner_address()
        to, cc = reply_all_recipients(message, owner)

        mime = EmailMessage()
        mime["To"] = ", ".join(to)
        if cc:
            mime["Cc"] = ", ".join(cc)
        subject = message.subject or ""
        mime["Subject"] = subject if subject.lower().startswith("re:") else f"Re: {subject}"
        if message.message_id_header:
            mime["In-Reply-To"] = message.message_id_header
            mime["References"] = message.message_id_header
        mime.set_content(body)
        mime.add_alternative(html_body, subtype="html")

        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii")
        draft = await self._call("create_draft", self._create_draft_sync, thread.id, raw)
        return str(draft.get("id") or "")

    async def _call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        self._ensure_authenticated()
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_call_failed", operation=operation, error=str(exc))
            raise GmailAPIError(f"{operation}: {exc}") from exc

    def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail mailbox is not authenticated. Call await GmailMailbox.authenticate() first."
            )

    async def _label_ids(self) -> dict[str, str]:
        if self._label_ids_by_name is None:
            self._label_ids_by_name = await self._call("list_labels", self._list_labels_sync)
        return self._label_ids_by_name

    async def _resolve_label_id(self, label_name: str) -> str:
        labels = await self._label_ids()
        label_id = labels.get(label_name)
        if label_id is None:
            created = await self._call("create_label", self._create_label_sync, label_name)
            label_id = str(created["id"])
            labels[label_name] = label_id
            logger.info("gmail_label_created", label=label_name, label_id=label_id)
        return label_id

    def _build_service(self, credentials_path: Path, token_path: Path, scopes: list[str]) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=scopes)

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=scopes)
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _get_profile_sync(self) -> dict[str, Any]:
        assert self._service is not None
        return self._service.users().getProfile(userId=self.settings.gmail_user_id).execute()

    def _list_thread_ids_sync(self, query: str, max_results: int | None) -> list[str]:
        assert self._service is not None
        user_id = self.settings.gmail_user_id
        thread_ids: list[str] = []

        page_token: str | None = None
        while True:
            if max_results is not None and len(thread_ids) >= max_results:
                break

            remaining = None if max_results is None else max_results - len(thread_ids)
            per_page = 500 if remaining is None else min(500, remaining)

            request = (
                self._service.users()
                .threads()
                .list(userId=user_id, maxResults=per_page, q=query, pageToken=page_token)
            )
            response = request.execute()
            for t in response.get("threads", []) or []:
                if t.get("id"):
                    thread_ids.append(str(t["id"]))
            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        return thread_ids if max_results is None else thread_ids[:max_results]

    def _get_thread_sync(self, thread_id: str) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .threads()
            .get(userId=self.settings.gmail_user_id, id=thread_id, format="full")
        )
        return request.execute()

    def _list_labels_sync(self) -> dict[str, str]:
        assert self._service is not None
        resp = self._service.users().labels().list(userId=self.settings.gmail_user_id).execute()
        out: dict[str, str] = {}
        for label in resp.get("labels", []) or []:
            if label.get("id") and label.get("name"):
                out[str(label["name"])] = str(label["id"])
        return out

    def _create_label_sync(self, label_name: str) -> dict[str, Any]:
        assert self._service is not None
        body = {
            "name": label_name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        return (
            self._service.users()
            .labels()
            .create(userId=self.settings.gmail_user_id, body=body)
            .execute()
        )

    def _modify_thread_sync(self, thread_id: str, add: list[str], remove: list[str]) -> None:
        assert self._service is not None
        body = {"addLabelIds": add, "removeLabelIds": remove}
        (
            self._service.users()
            .threads()
            .modify(userId=self.settings.gmail_user_id, id=thread_id, body=body)
            .execute()
        )

    def _modify_message_sync(self, message_id: str, add: list[str], remove: list[str]) -> None:
        assert self._service is not None
        body = {"addLabelIds": add, "removeLabelIds": remove}
        (
            self._service.users()
            .messages()
            .modify(userId=self.settings.gmail_user_id, id=message_id, body=body)
            .execute()
        )

    def _trash_thread_sync(self, thread_id: str) -> None:
        assert self._service is not None
        self._service.users().threads().trash(userId=self.settings.gmail_user_id, id=thread_id).execute()

    def _create_draft_sync(self, thread_id: str, raw: str) -> dict[str, Any]:
        assert self._service is not None
        body = {"message": {"raw": raw, "threadId": thread_id}}
        return self._service.users().drafts().create(userId=self.settings.gmail_user_id, body=body).execute()
