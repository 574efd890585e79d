from unittest.mock import MagicMock, patch
import pytest
from nilcc_verifier.config import ServerConfig
from nilcc_verifier.workflow import MeasurementWorkflow, verdict

INPUTS = ("a" * 64, "b" * 64, "0.3.6", 2)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def workflow(client):
    return MeasurementWorkflow(ServerConfig(github_token="ghp_test"), client=client)


@pytest.mark.parametrize(
    "status,conclusion,expected",
    [
        ("completed", "success", True),
        ("completed", "failure", False),
        ("completed", "cancelled", None),
        ("in_progress", None, None),
    ],
)
def test_verdict(status, conclusion, expected):
    assert verdict(status, conclusion) is expected


@pytest.mark.asyncio
async def test_trigger_requires_all_inputs(workflow, client):
    outcome = await workflow.trigger("a" * 64, "", "0.3.6", 2)
    assert outcome.success is False
    assert outcome.status_code == 400
    client.dispatch_workflow.assert_not_called()


@pytest.mark.asyncio
async def test_trigger_without_token(client):
    workflow = MeasurementWorkflow(ServerConfig(), client=client)
    outcome = await workflow.trigger(*INPUTS)
    assert outcome.error == "configuration_error"
    assert outcome.status_code == 500


@pytest.mark.asyncio
@patch("nilcc_verifier.workflow.RUN_LOOKUP_DELAY", 0)
async def test_trigger_returns_run_id(workflow, client, fake_response):
    client.dispatch_workflow.return_value = fake_response(204, text="")
    client.list_workflow_runs.return_value = fake_response(
        200, {"workflow_runs": [{"id": 42}, {"id": 41}]}
    )

    outcome = await workflow.trigger(*INPUTS)
    assert outcome.success is True
    assert outcome.workflow_run_id == 42
    assert outcome.status == "queued"
    inputs = client.dispatch_workflow.call_args.args[4]
    assert inputs["vcpus"] == "2"


@pytest.mark.asyncio
async def test_trigger_dispatch_rejected(workflow, client, fake_response):
    client.dispatch_workflow.return_value = fake_response(
        422, {"message": "Unexpected inputs provided"}
    )
    outcome = await workflow.trigger(*INPUTS)
    assert outcome.error == "workflow_trigger_failed"
    assert outcome.status_code == 422
    assert "Unexpected inputs provided" in outcome.message


@pytest.mark.asyncio
async def test_monitor_completed_run(workflow, client, fake_response):
    client.get_workflow_run.return_value = fake_response(
        200,
        {
            "status": "completed",
            "conclusion": "failure",
            "html_url": "https://github.com/o/r/actions/runs/42",
        },
    )
    outcome = await workflow.monitor("42")
    assert outcome.success is True
    assert outcome.verified is False
    assert outcome.html_url.endswith("/42")


@pytest.mark.asyncio
async def test_monitor_requires_run_id(workflow):
    outcome = await workflow.monitor("")
    assert outcome.status_code == 400


@pytest.mark.asyncio
async def test_monitor_network_error(workflow, client):
    client.get_workflow_run.side_effect = ConnectionError("down")
    outcome = await workflow.monitor("42")
    assert outcome.success is False
    assert outcome.error == "monitoring_failed"
    assert outcome.status_code == 500
