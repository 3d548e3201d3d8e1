from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional, Sequence

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from core.logs import get_logger
from core.settings import CLIENT_SECRET_PATH, FIRESTORE, TOKEN_PATH


SCOPES = list(FIRESTORE.scopes)


class GoogleAuth:
    """OAuth user credentials for the Firestore REST API, cached in token.json."""

    def __init__(
        self,
        secrets_path: str | Path = CLIENT_SECRET_PATH,
        token_path: str | Path = TOKEN_PATH,
        scopes: Sequence[str] = SCOPES,
    ):
        self.secrets_path = Path(secrets_path)
        self.token_path = Path(token_path)
        self.scopes = list(scopes)
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.creds: Optional[Credentials] = None
        self.logger = get_logger("edupay.auth", "auth.log")

    def ensure_credentials(self) -> bool:
        if self._usable(self.creds):
            return True

        creds = self.creds or self._load_cached()
        if creds is not None and not self._has_required_scopes(creds):
            self.logger.warning("Cached token lacks Firestore scopes; asking for consent again")
            self.reset_credentials()
            creds = None
        if creds is not None and not creds.valid:
            creds = self._refresh(creds)
        if creds is None:
            creds = self._consent()
        if not self._has_required_scopes(creds):
            raise RuntimeError("Authorization granted without the Firestore scopes")

        self.creds = creds
        self._save(creds)
        self.logger.info("Signed in with scopes: %s", ", ".join(sorted(creds.scopes or [])) or "-")
        return True

    def get_credentials(self) -> Optional[Credentials]:
        return self.creds

    def reset_credentials(self) -> None:
        self.creds = None
        try:
            self.token_path.unlink()
            self.logger.info("Removed cached Google token")
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.warning("Failed to remove cached token: %s", exc)

    # ----- helpers -----
    def _usable(self, creds: Optional[Credentials]) -> bool:
        return creds is not None and creds.valid and self._has_required_scopes(creds)

    def _load_cached(self) -> Optional[Credentials]:
        if not self.token_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
        except (ValueError, json.JSONDecodeError) as exc:
            self.logger.warning("Unreadable %s (%s); signing in again", self.token_path.name, exc)
            self.reset_credentials()
            return None

    def _refresh(self, creds: Credentials) -> Optional[Credentials]:
        if not (creds.expired and creds.refresh_token):
            return None
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            self.logger.warning("Token refresh failed: %s; signing in again", exc)
            self.reset_credentials()
            return None
        return creds

    def _consent(self) -> Credentials:
        if not self.secrets_path.exists():
            raise FileNotFoundError(
                f"{self.secrets_path} not found. Create a Desktop OAuth client "
                "in Google Cloud and download its JSON."
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(self.secrets_path), self.scopes)
        self.logger.info("Running OAuth consent flow (local server)")
        return flow.run_local_server(port=0, access_type="offline", prompt="consent")

    def _save(self, creds: Credentials) -> None:
        tmp_path = self.token_path.with_suffix(".tmp")
        tmp_path.write_text(creds.to_json(), encoding="utf-8")
        os.replace(tmp_path, self.token_path)

    def _has_required_scopes(self, creds: Credentials) -> bool:
        return set(self.scopes) <= set(creds.scopes or [])
