from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from inbox_sorter.gmail.label_colors import LabelColor
from inbox_sorter.observability.logging import get_logger

# Labeling needs modify; readonly cannot create labels or change message labels.
SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class GmailClientConfig:
    # Path to OAuth client credentials downloaded from Google Cloud Console.
    credentials_path: Path
    # Token cache will be created here after first login.
    token_path: Path
    # Gmail userId, "me" refers to the authenticated user.
    user_id: str = "me"
    # Socket timeout for every API request, in seconds.
    timeout_s: float = 30.0


class GmailClient:
    """Blocking Gmail API wrapper. Safe to call from several worker threads."""

    def __init__(self, cfg: GmailClientConfig):
        self._cfg = cfg
        self._creds: Optional[Credentials] = None
        self._service = None
        self._local = threading.local()

    def connect(self) -> None:
        """Create an authenticated Gmail API service client."""
        creds = None

        if self._cfg.token_path.exists():
            creds = Credentials.from_authorized_user_file(str(self._cfg.token_path), SCOPES)

        # If there are no (valid) credentials available, let the user log in.
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self._cfg.credentials_path),
                    SCOPES,
                )
                creds = flow.run_local_server(port=0)

            # Save the credentials for the next run.
            self._cfg.token_path.parent.mkdir(parents=True, exist_ok=True)
            self._cfg.token_path.write_text(creds.to_json(), encoding="utf-8")

        self._creds = creds
        self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)

    @property
    def service(self):
        if self._service is None:
            raise RuntimeError("GmailClient is not connected. Call connect() first.")
        return self._service

    def _http(self) -> AuthorizedHttp:
        # httplib2 connections are not thread-safe; keep one per worker thread.
        http = getattr(self._local, "http", None)
        if http is None:
            http = AuthorizedHttp(self._creds, http=httplib2.Http(timeout=self._cfg.timeout_s))
            self._local.http = http
        return http

    def _execute(self, request) -> Dict[str, Any]:
        return request.execute(http=self._http())

    def list_message_ids(
        self, query: str = "", max_results: int = 50, page_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]:
        """
        List message IDs matching a Gmail search query, one page at a time.
        Example query: 'newer_than:7d in:inbox -category:promotions'
        """
        params: Dict[str, Any] = {"userId": self._cfg.user_id, "q": query, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        resp = self._execute(self.service.users().messages().list(**params))
        ids = [m["id"] for m in resp.get("messages", [])]
        return ids, resp.get("nextPageToken")

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        """
        Fetch a message resource.
        fmt: 'full' | 'metadata' | 'minimal' | 'raw'
        """
        return self._execute(
            self.service.users().messages().get(userId=self._cfg.user_id, id=message_id, format=fmt)
        )

    def list_labels(self) -> List[Dict[str, Any]]:
        resp = self._execute(self.service.users().labels().list(userId=self._cfg.user_id))
        return list(resp.get("labels", []))

    def create_label(self, name: str, color: LabelColor) -> str:
        body = {
            "name": name,
            "messageListVisibility": "show",
            "labelListVisibility": "labelShow",
            "color": color.as_gmail(),
        }
        resp = self._execute(self.service.users().labels().create(userId=self._cfg.user_id, body=body))
        logger.debug("[gmail] labels.create %s -> %s", name, resp["id"])
        return resp["id"]

    def modify_message_labels(
        self,
        message_id: str,
        add_label_ids: Sequence[str] = (),
        remove_label_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        body: Dict[str, List[str]] = {}
        if add_label_ids:
            body["addLabelIds"] = list(add_label_ids)
        if remove_label_ids:
            body["removeLabelIds"] = list(remove_label_ids)
        return self._execute(
            self.service.users().messages().modify(userId=self._cfg.user_id, id=message_id, body=body)
        )

    def get_profile(self) -> Dict[str, Any]:
        """Get the Gmail profile of the authenticated user."""
        return self._execute(self.service.users().getProfile(userId=self._cfg.user_id))
