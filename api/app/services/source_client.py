"""Source API client for scheduled transactions.

REST wrapper with:
- HTTP basic auth from FIND_LABS_USERNAME / FIND_LABS_PASSWORD
- sequential offset pagination, capped by a hard record ceiling
- strict mapping of upstream rows into ``TaskRecord``; malformed rows are quarantined
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

import httpx
import pydantic

from app.models.task_record import TaskRecord
from app.services import scan_config
from app.services.scan_errors import ConfigurationError, UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

LIST_PATH = "/flow/v1/scheduled-transaction"


def map_task_record(raw: Any) -> Optional[TaskRecord]:
    """Map one upstream row to a TaskRecord, or None when it is malformed."""
    if not isinstance(raw, dict):
        return None
    try:
        return TaskRecord(
            id=raw.get("id"),
            predecessor_ref=raw.get("scheduled_transaction"),
            successor_ref=raw.get("completed_transaction"),
            status=raw.get("status"),
            scheduled_at=raw.get("scheduled_at"),
            completed_at=raw.get("completed_at") or None,
            owner_address=raw.get("owner"),
            handler_id=raw.get("handler_uuid"),
            handler_contract=raw.get("handler_contract"),
            priority=raw.get("priority"),
            execution_effort=raw.get("execution_effort"),
            fee=raw.get("fees"),
            block_height=raw.get("block_height"),
            completed_block_height=raw.get("completed_block_height"),
            error_detail=raw.get("error") or None,
        )
    except pydantic.ValidationError as exc:
        logger.warning(
            "task_record_quarantined id=%s errors=%s",
            raw.get("id"),
            "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()),
        )
        return None


class SourceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        page_size: Optional[int] = None,
        max_records: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        env_user, env_password = scan_config.source_credentials()
        self._base_url = (base_url or scan_config.source_base_url()).rstrip("/")
        self._username = username if username is not None else env_user
        self._password = password if password is not None else env_password
        if not self._base_url:
            raise ConfigurationError(f"Source API base URL not configured for {scan_config.flow_network()}")
        if not self._username or not self._password:
            raise ConfigurationError("Source API credentials not configured")
        self.page_size = page_size or scan_config.page_size()
        self.max_records = max_records or scan_config.max_records()
        self._timeout = timeout or scan_config.source_timeout_seconds()
        self._transport = transport
        self._headers = {
            "Content-Type": "application/json",
            "User-Agent": scan_config.USER_AGENT,
        }
        # Rows dropped by the strict mapping during the last iteration.
        self.quarantined = 0

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            auth=(self._username, self._password),
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _get_json(self, client: httpx.Client, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            r = client.get(path, params=params)
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Source API is not responding: {exc.__class__.__name__}") from exc
        if r.status_code >= 400:
            message = "Unknown error"
            try:
                body = r.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
            elif r.text:
                message = r.text[:200]
            raise UpstreamError(r.status_code, message)
        try:
            return r.json()
        except ValueError as exc:
            raise UpstreamError(r.status_code, "Response was not JSON") from exc

    def iter_task_records(self, owner_address: str) -> Iterator[TaskRecord]:
        """Yield every task record for an owner, page by page.

        Stops on a short page or once ``max_records`` rows were requested. The
        generator is single-use; call again to restart from offset 0.
        """
        self.quarantined = 0
        offset = 0
        with self._client() as client:
            while True:
                limit = min(self.page_size, self.max_records - offset)
                payload = self._get_json(
                    client,
                    LIST_PATH,
                    params={"owner": owner_address, "limit": limit, "offset": offset},
                )
                rows = payload.get("data") if isinstance(payload, dict) else None
                if not isinstance(rows, list):
                    rows = []
                for raw in rows:
                    record = map_task_record(raw)
                    if record is None:
                        self.quarantined += 1
                        continue
                    yield record
                offset += limit
                if len(rows) < limit:
                    break
                if offset >= self.max_records:
                    logger.warning(
                        "source_pagination_ceiling owner=%s max_records=%s",
                        owner_address,
                        self.max_records,
                    )
                    break

    def fetch_all_task_records(self, owner_address: str) -> list[TaskRecord]:
        records = list(self.iter_task_records(owner_address))
        logger.info(
            "source_fetch_complete owner=%s records=%s quarantined=%s",
            owner_address,
            len(records),
            self.quarantined,
        )
        return records

    def get_task_record(self, record_id: str) -> Optional[TaskRecord]:
        """Fetch a single record by id."""
        with self._client() as client:
            payload = self._get_json(client, f"{LIST_PATH}/{record_id}")
        return map_task_record(payload)

    def check_connection(self) -> bool:
        try:
            with self._client() as client:
                self._get_json(client, LIST_PATH, params={"limit": 1})
        except (UpstreamError, UpstreamUnavailable) as exc:
            logger.warning("source_connection_check_failed error=%s", exc)
            return False
        return True
