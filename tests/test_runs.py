import pytest

from adgrouper import runs
from adgrouper.campaign import Campaign, ProviderSelection
from adgrouper.db import Base, SessionLocal, engine
from adgrouper.models import Run, Snapshot
from adgrouper.schemas import ProviderName


@pytest.fixture(autouse=True)
def clean_database():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)


def _campaign(name: str = "Shoes", goal: str = "sell shoes") -> Campaign:
    return Campaign(
        name=name,
        goal=goal,
        provider=ProviderSelection(name=ProviderName.OPENAI, model="gpt-4o", api_key="sk-secret"),
        landing_page_urls=["https://a.test"],
        keywords=["red shoes"],
    )


def test_create_run_stores_first_snapshot_without_api_key():
    session = SessionLocal()
    try:
        run = runs.create_run(session, _campaign())
        session.commit()
        run_id = run.id
    finally:
        session.close()

    session = SessionLocal()
    try:
        stored = runs.get_run(session, run_id)
        assert stored.campaign_name == "Shoes"
        assert stored.stage == "submitted"
        assert len(stored.snapshots) == 1
        snapshot = runs.latest_snapshot(stored)
        assert snapshot.stage == "submitted"
        assert snapshot.data["landingPageUrls"] == ["https://a.test"]
        assert "apiKey" not in snapshot.data["provider"]
        assert "sk-secret" not in str(snapshot.data)
    finally:
        session.close()


def test_update_run_appends_results_snapshot():
    session = SessionLocal()
    try:
        run = runs.create_run(session, _campaign())
        runs.update_run(session, run, stage="results", campaign=_campaign(name="Shoes v2"))
        session.commit()

        assert run.stage == "results"
        assert run.campaign_name == "Shoes v2"
        assert [snapshot.stage for snapshot in run.snapshots] == ["submitted", "results"]
        assert runs.latest_snapshot(run).data["name"] == "Shoes v2"

        payload = runs.run_to_dict(run, include_snapshots=True)
        assert payload["campaignName"] == "Shoes v2"
        assert len(payload["snapshots"]) == 2
        assert payload["campaign"]["name"] == "Shoes v2"
        assert "snapshots" not in runs.run_to_dict(run)
    finally:
        session.close()


def test_invalid_stage_rejected():
    session = SessionLocal()
    try:
        with pytest.raises(ValueError):
            runs.create_run(session, _campaign(), stage="archived")
        run = runs.create_run(session, _campaign())
        with pytest.raises(ValueError):
            runs.update_run(session, run, stage="done")
    finally:
        session.rollback()
        session.close()


def test_delete_run_cascades_to_snapshots():
    session = SessionLocal()
    try:
        run = runs.create_run(session, _campaign())
        runs.add_snapshot(session, run, _campaign(), "results")
        session.commit()

        runs.delete_run(session, run)
        session.commit()

        assert session.query(Run).count() == 0
        assert session.query(Snapshot).count() == 0
    finally:
        session.close()


def test_list_runs_returns_every_run():
    session = SessionLocal()
    try:
        runs.create_run(session, _campaign(name="First"))
        runs.create_run(session, _campaign(name="Second"))
        session.commit()

        names = {run.campaign_name for run in runs.list_runs(session)}
        assert names == {"First", "Second"}
    finally:
        session.close()
