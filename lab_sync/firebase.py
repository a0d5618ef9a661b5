from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.service_account import Credentials

from .config import FirebaseConfig
from .errors import LabSyncError, NotFoundError, TransportError

SCOPES = [
    "https://www.googleapis.com/auth/firebase.database",
    "https://www.googleapis.com/auth/userinfo.email",
]

LOGGER = logging.getLogger(__name__)


class FirebaseClient:
    """Thin wrapper around the Firebase Realtime Database REST API.

    Every call is a single blocking request. Failures are not retried: a
    non-2xx answer raises :class:`TransportError`, except a 404 on ``get``
    which is reported as ``None``.
    """

    def __init__(self, conf: FirebaseConfig, session: requests.Session | None = None) -> None:
        self._conf = conf
        self._session = session
        self._params: Dict[str, str] = {}
        if conf.credentials_file is None:
            secret = conf.resolve_secret()
            if secret:
                self._params["auth"] = secret

    def _session_client(self) -> requests.Session:
        if self._session is None:
            if self._conf.credentials_file is not None:
                creds = Credentials.from_service_account_file(
                    str(self._conf.credentials_file), scopes=SCOPES
                )
                self._session = AuthorizedSession(creds)
            elif self._params:
                self._session = requests.Session()
            else:
                msg = (
                    "No Firebase credentials available. Set 'credentials_file' or provide "
                    f"the database secret through '{self._conf.secret_env}'."
                )
                raise LabSyncError(msg)
        return self._session

    def build_url(self, path: str) -> str:
        clean_path = path.strip("/")
        suffix = f"{clean_path}.json" if clean_path else ".json"
        return f"{self._conf.database_url}/{suffix}"

    # Public interface -------------------------------------------------------
    def get(self, path: str) -> Any | None:
        """Read the JSON value at ``path``; ``None`` when the node does not exist."""

        try:
            return self._fetch(path, "get")
        except NotFoundError:
            LOGGER.info("Node not found (404) at %s; returning None", path)
            return None

    def patch(self, path: str, data: Mapping[str, Any]) -> Any | None:
        """Merge ``data`` into the node at ``path`` without touching siblings."""

        return self._fetch(path, "patch", dict(data))

    def post(self, path: str, data: Mapping[str, Any]) -> Dict[str, str]:
        """Append ``data`` under a server generated id; returns ``{"name": id}``."""

        result = self._fetch(path, "post", dict(data))
        return result if isinstance(result, dict) else {}

    def delete(self, path: str) -> None:
        self._fetch(path, "delete")

    # Internal ---------------------------------------------------------------
    def _fetch(self, path: str, method: str, payload: Dict[str, Any] | None = None) -> Any | None:
        session = self._session_client()
        url = self.build_url(path)
        LOGGER.debug("Firebase %s on %s", method.upper(), path)
        try:
            response = session.request(
                method.upper(),
                url,
                params=self._params or None,
                json=payload,
                timeout=self._conf.request_timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(method, path, None, str(exc)) from exc

        status = response.status_code
        if 200 <= status < 300:
            text = response.text
            if not text or text.strip() == "null":
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise TransportError(method, path, status, text) from exc

        if method == "get" and status == 404:
            raise NotFoundError(path)

        LOGGER.error(
            "Firebase %s on %s failed with status %s: %s",
            method.upper(),
            path,
            status,
            response.text,
        )
        raise TransportError(method, path, status, response.text)
