"""Smart scan: cache gate, fetch, chain building, dedup and reconciliation for one owner."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from app.adapters.agent_store import AgentStore
from app.models.agent import Agent
from app.models.scan import ReconcileResult, ScanRecord, ScanResult, ScanStatus, ScanSummary, ScanType, StatusSummary
from app.services import cache_gate, chain_builder, chain_dedup, reconciler, scan_config
from app.services.scan_errors import AgentNotFound, ValidationError
from app.services.source_client import SourceClient

logger = logging.getLogger(__name__)

SCAN_HISTORY_LIMIT = 10

ClientFactory = Callable[[], SourceClient]


def validate_owner_address(owner_address: object) -> str:
    if not scan_config.is_valid_owner_address(owner_address):
        raise ValidationError("Invalid Flow address format")
    return str(owner_address)


def _completed_view(agents: list[Agent]) -> list[Agent]:
    # Absorbed rows live on as history inside their active agent.
    return [a for a in agents if not a.is_active and a.superseded_by is None]


def _record_failure(
    store: AgentStore, owner_address: str, phase: str, exc: Exception, now: Optional[datetime] = None
) -> None:
    try:
        store.append_scan(
            ScanRecord(
                owner_address=owner_address,
                agents_found=0,
                succeeded=False,
                error_detail=f"{phase}: {exc}",
                observed_at=now or datetime.now(timezone.utc),
                scan_type=ScanType.FAILED,
            )
        )
    except Exception:
        logger.exception("scan_history_write_failed owner=%s", owner_address)


def scan(
    store: AgentStore,
    owner_address: str,
    force_refresh: bool = False,
    *,
    client_factory: Optional[ClientFactory] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    owner_address = validate_owner_address(owner_address)
    logger.info("scan_started owner=%s force_refresh=%s", owner_address, force_refresh)
    store.upsert_user(owner_address)

    stale, last_scan = cache_gate.needs_rescan(store, owner_address, force_refresh, now=now)
    if not stale and last_scan is not None:
        agents = store.list_agents(owner_address)
        active = [a for a in agents if a.is_active]
        logger.info("scan_cache_hit owner=%s last_scan=%s", owner_address, last_scan.observed_at.isoformat())
        return ScanResult(
            agents=active,
            completed_agents=_completed_view(agents),
            summary=ScanSummary(
                total_found=last_scan.agents_found,
                processed=len(active),
                scanned_at=last_scan.observed_at,
                cached=True,
            ),
        )

    phase = "fetch"
    try:
        client = (client_factory or SourceClient)()
        records = client.fetch_all_task_records(owner_address)
        chains = chain_dedup.deduplicate_chains(chain_builder.collect_chains(records))
        built = chain_builder.split_agents(chains)
        logger.info(
            "chains_built owner=%s records=%s active=%s completed=%s",
            owner_address,
            len(records),
            len(built.active),
            len(built.completed),
        )

        phase = "write"
        result: ReconcileResult = reconciler.reconcile(store, owner_address, built.active, built.completed)
        scanned_at = now or datetime.now(timezone.utc)
        store.append_scan(
            ScanRecord(
                owner_address=owner_address,
                agents_found=built.total_found,
                succeeded=True,
                observed_at=scanned_at,
                scan_type=ScanType.RECONCILIATION,
                created=result.created,
                updated=result.updated,
                deactivated=result.deactivated,
            )
        )
    except Exception as exc:
        logger.warning("scan_failed owner=%s phase=%s error=%s", owner_address, phase, exc)
        _record_failure(store, owner_address, phase, exc, now)
        raise

    agents = store.list_agents(owner_address)
    active = [a for a in agents if a.is_active]
    logger.info(
        "scan_complete owner=%s created=%s updated=%s deactivated=%s",
        owner_address,
        result.created,
        result.updated,
        result.deactivated,
    )
    return ScanResult(
        agents=active,
        completed_agents=_completed_view(agents),
        summary=ScanSummary(
            total_found=built.total_found,
            processed=len(active),
            scanned_at=scanned_at,
            cached=False,
            reconciliation=result,
            quarantined=getattr(client, "quarantined", 0),
        ),
    )


def get_status(store: AgentStore, owner_address: str) -> ScanStatus:
    owner_address = validate_owner_address(owner_address)
    agents = store.list_agents(owner_address)
    history = store.list_scans(owner_address, limit=SCAN_HISTORY_LIMIT)
    if not agents and not history:
        raise AgentNotFound("No scans found for this address")
    return ScanStatus(
        owner_address=owner_address,
        agents=agents,
        scan_history=history,
        summary=StatusSummary(
            total_agents=len(agents),
            active_agents=sum(1 for a in agents if a.is_active),
            last_scan=history[0].observed_at if history else None,
        ),
    )

