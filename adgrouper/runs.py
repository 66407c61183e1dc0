"""Run history: one row per campaign run plus timestamped campaign snapshots."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .campaign import Campaign
from .models import RUN_STAGES, Run, Snapshot

logger = logging.getLogger(__name__)


def _check_stage(stage: str) -> str:
    if stage not in RUN_STAGES:
        raise ValueError(f"Stage must be one of {', '.join(RUN_STAGES)}")
    return stage


def create_run(session: Session, campaign: Campaign, stage: str = "submitted") -> Run:
    """Create a run and its first snapshot."""

    run = Run(campaign_name=campaign.name, campaign_goal=campaign.goal, stage=_check_stage(stage))
    session.add(run)
    session.flush()
    add_snapshot(session, run, campaign, stage)
    logger.info("Created run %s for campaign %r (%s)", run.id, campaign.name, stage)
    return run


def add_snapshot(session: Session, run: Run, campaign: Campaign, stage: Optional[str] = None) -> Snapshot:
    snapshot = Snapshot(stage=_check_stage(stage or run.stage), data=campaign.to_json())
    run.snapshots.append(snapshot)
    session.flush()
    return snapshot


def list_runs(session: Session) -> list[Run]:
    return list(session.execute(select(Run).order_by(Run.created_at.desc())).scalars())


def get_run(session: Session, run_id: str) -> Optional[Run]:
    return session.get(Run, run_id)


def update_run(
    session: Session,
    run: Run,
    stage: Optional[str] = None,
    campaign: Optional[Campaign] = None,
) -> Run:
    """Move a run to ``stage`` and/or record a new snapshot of ``campaign``."""

    if stage:
        run.stage = _check_stage(stage)
    if campaign is not None:
        add_snapshot(session, run, campaign, stage or "results")
        run.campaign_name = campaign.name
        run.campaign_goal = campaign.goal
    session.flush()
    return run


def latest_snapshot(run: Run) -> Optional[Snapshot]:
    # Loaded in creation order; new snapshots are appended.
    return run.snapshots[-1] if run.snapshots else None


def delete_run(session: Session, run: Run) -> None:
    session.delete(run)
    session.flush()
    logger.info("Deleted run %s", run.id)


def run_to_dict(run: Run, include_snapshots: bool = False) -> dict:
    payload = {
        "id": run.id,
        "campaignName": run.campaign_name,
        "campaignGoal": run.campaign_goal,
        "stage": run.stage,
        "createdAt": run.created_at.isoformat() if run.created_at else None,
        "updatedAt": run.updated_at.isoformat() if run.updated_at else None,
    }
    if include_snapshots:
        payload["snapshots"] = [
            {
                "id": snapshot.id,
                "stage": snapshot.stage,
                "data": snapshot.data,
                "createdAt": snapshot.created_at.isoformat() if snapshot.created_at else None,
            }
            for snapshot in run.snapshots
        ]
        latest = latest_snapshot(run)
        payload["campaign"] = latest.data if latest else None
    return payload
