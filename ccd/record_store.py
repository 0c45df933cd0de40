"""
Record Store Client - Create fact and session records over HTTP.

Talks to a PocketBase-style REST API:
    GET  /api/collections/projects/records/<id>
    POST /api/collections/extracted_facts/records
    POST /api/collections/session_history/records

Calls are made once and never retried. Callers log failures and move on.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

import requests

from .conversation_types import Fact, format_timestamp

logger = logging.getLogger(__name__)

PROJECTS_COLLECTION = "projects"
FACTS_COLLECTION = "extracted_facts"
SESSIONS_COLLECTION = "session_history"


class RecordStoreError(Exception):
    """A record store request failed or returned a non-success status."""


class RecordStoreClient:

    def __init__(self, base_url: str, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        # None means no timeout: a hung call blocks the caller
        self.timeout = timeout
        self.session = session or requests.Session()

    def _records_url(self, collection: str) -> str:
        return f"{self.base_url}/api/collections/{collection}/records"

    def _post(self, collection: str, payload: Dict) -> Dict:
        try:
            response = self.session.post(self._records_url(collection), json=payload,
                                         timeout=self.timeout)
        except requests.RequestException as e:
            raise RecordStoreError(f"POST {collection} failed: {e}") from e

        if response.status_code not in (200, 201):
            raise RecordStoreError(
                f"Failed to create {collection} record: status {response.status_code}"
            )
        try:
            return response.json()
        except ValueError:
            return {}

    def verify_project(self, project_id: str) -> None:
        """Raise RecordStoreError unless the project record exists."""
        url = f"{self._records_url(PROJECTS_COLLECTION)}/{project_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise RecordStoreError(f"Could not reach record store: {e}") from e

        if response.status_code != 200:
            raise RecordStoreError(f"Project not found: {project_id}")

    def create_fact(self, project_id: str, fact: Fact) -> Dict:
        return self._post(FACTS_COLLECTION, {
            "project": project_id,
            "fact_type": fact.type.value,
            "content": fact.content,
            "importance": fact.importance,
            "stale": False,
        })

    def create_session(self, project_id: str, summary: str, token_count: int,
                       session_start: datetime, session_end: Optional[datetime] = None) -> Dict:
        return self._post(SESSIONS_COLLECTION, {
            "project": project_id,
            "summary": summary,
            "token_count": token_count,
            "session_start": format_timestamp(session_start),
            "session_end": format_timestamp(session_end),
        })
