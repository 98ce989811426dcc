# tasksync/services/google_auth.py
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Sequence

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from core.settings import CLIENT_SECRET_PATH, TOKEN_PATH, CalendarSettings


logger = logging.getLogger("tasksync.auth")

SCOPES = list(CalendarSettings().scopes)


class GoogleAuth:
    """OAuth credentials for Calendar and Sheets, cached in ``token.json``."""

    def __init__(
        self,
        secrets_path: str | Path = CLIENT_SECRET_PATH,
        token_path: str | Path = TOKEN_PATH,
        scopes: Sequence[str] = SCOPES,
    ):
        self.secrets_path = Path(secrets_path)
        self.token_path = Path(token_path)
        self.scopes = list(scopes)
        self.creds: Optional[Credentials] = None
        logger.debug("Token path: %s", self.token_path)

    def ensure_credentials(self) -> bool:
        if self.creds and self.creds.valid and self._has_required_scopes(self.creds):
            return True

        if self.token_path.exists():
            try:
                self.creds = Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
            except (ValueError, json.JSONDecodeError) as exc:
                logger.warning("Failed to load %s: %s; triggering reauth", self.token_path.name, exc)
                self.reset_credentials()

        if self.creds and not self._has_required_scopes(self.creds):
            logger.info("Token is missing required scopes; requesting consent again")
            self.reset_credentials()

        if not self.creds or not self.creds.valid:
            if self.creds and self.creds.expired and self.creds.refresh_token:
                try:
                    self.creds.refresh(Request())
                except RefreshError as exc:
                    logger.warning("Token refresh failed: %s; forcing reauth", exc)
                    self.reset_credentials()
            if not self.creds:
                if not self.secrets_path.exists():
                    raise FileNotFoundError(
                        f"{self.secrets_path} not found. Create a Desktop OAuth client "
                        "in Google Cloud and download its JSON there."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(str(self.secrets_path), self.scopes)
                logger.info("Running OAuth consent flow (local server)")
                self.creds = flow.run_local_server(
                    port=0,
                    access_type="offline",
                    prompt="consent",
                    include_granted_scopes="true",
                )

        if not self.creds:
            raise RuntimeError("Could not obtain Google credentials")

        if not self._has_required_scopes(self.creds):
            raise RuntimeError("Google authorization lacks the required scopes")

        self._persist_credentials(self.creds)
        self._log_active_scopes(self.creds.scopes)
        return True

    def get_credentials(self) -> Optional[Credentials]:
        return self.creds

    def reset_credentials(self) -> None:
        self.creds = None
        try:
            if self.token_path.exists():
                self.token_path.unlink()
                logger.info("Removed cached Google token")
        except OSError as exc:
            logger.warning("Failed to remove cached token: %s", exc)

    # ----- helpers -----
    def _persist_credentials(self, creds: Credentials) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        data = creds.to_json()
        tmp_path = self.token_path.with_suffix(".tmp")
        try:
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, self.token_path)
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

    def _has_required_scopes(self, creds: Credentials) -> bool:
        current = set(creds.scopes or [])
        return all(scope in current for scope in self.scopes)

    def _log_active_scopes(self, scopes: Iterable[str] | None) -> None:
        scopes_list = sorted(set(scopes or []))
        logger.debug("Active scopes: %s", ", ".join(scopes_list) if scopes_list else "-")


__all__ = ["GoogleAuth", "SCOPES"]
