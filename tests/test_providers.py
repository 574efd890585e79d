from unittest.mock import patch
import pytest
import requests
from nilcc_verifier.errors import NilccApiError, ReportError
from nilcc_verifier.providers import NilccApiClient, WorkloadReportProvider
from nilcc_verifier.providers.workload import (
    fetch_measurement,
    parse_report,
    report_url,
    report_url_for_workload,
)

REPORT = {
    "raw_report": "abcd",
    "report": {"measurement": "m" * 96},
    "environment": {"nilcc_version": "0.3.6", "cpu_count": "4", "vm_type": "gpu"},
}


def test_report_urls():
    assert report_url("w.example") == "https://w.example/nilcc/api/v2/report"
    assert report_url_for_workload("w1", "workloads.example") == (
        "https://w1.workloads.example/nilcc/api/v2/report"
    )
    with pytest.raises(ValueError):
        report_url_for_workload("")


def test_parse_report():
    report = parse_report(REPORT)
    assert report.raw_report == "abcd"
    assert report.measurement == "m" * 96
    assert report.cpu_count == 4
    assert report.vm_type == "gpu"


def test_parse_report_without_raw_report():
    with pytest.raises(ReportError, match="No raw_report found in response"):
        parse_report({"report": {"measurement": "x"}})
    with pytest.raises(ReportError):
        parse_report(["not", "an", "object"])


@patch("nilcc_verifier.providers.workload.requests.get")
def test_fetch_measurement(mock_get, fake_response):
    mock_get.return_value = fake_response(200, REPORT)
    assert fetch_measurement("https://w.example/nilcc/api/v2/report") == "m" * 96

    mock_get.return_value = fake_response(200, {"report": {}})
    assert fetch_measurement("https://w.example/nilcc/api/v2/report") is None


@pytest.mark.asyncio
@patch("nilcc_verifier.providers.workload.requests.get")
async def test_workload_provider(mock_get, fake_response):
    mock_get.return_value = fake_response(200, REPORT)
    report = await WorkloadReportProvider().fetch_report("w.example")
    assert report.nilcc_version == "0.3.6"
    assert mock_get.call_args.args[0] == "https://w.example/nilcc/api/v2/report"


@pytest.mark.asyncio
@patch("nilcc_verifier.providers.workload.requests.get")
async def test_workload_provider_errors(mock_get, fake_response):
    provider = WorkloadReportProvider()
    with pytest.raises(ReportError, match="Workload has no domain"):
        await provider.fetch_report("")

    mock_get.return_value = fake_response(503, text="unavailable")
    with pytest.raises(ReportError, match=r"Failed to fetch report \(503\)"):
        await provider.fetch_report("w.example")

    mock_get.return_value = fake_response(200, text="<html>")
    with pytest.raises(ReportError, match="not valid JSON"):
        await provider.fetch_report("w.example")

    mock_get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(ReportError, match="Failed to fetch report"):
        await provider.fetch_report("w.example")


@patch("nilcc_verifier.providers.nilcc.requests.get")
def test_api_client_lists_workloads(mock_get, fake_response):
    mock_get.return_value = fake_response(
        200,
        [
            {
                "workloadId": "w1",
                "name": "web",
                "domain": "w1.example",
                "dockerCompose": "services: {}\n",
            }
        ],
    )
    client = NilccApiClient("key-123", "https://api.example/")
    workloads = client.list_workloads()
    assert workloads[0].workload_id == "w1"
    assert workloads[0].docker_compose == "services: {}\n"
    assert mock_get.call_args.args[0] == "https://api.example/api/v1/workloads/list"
    assert mock_get.call_args.kwargs["headers"]["x-api-key"] == "key-123"


@patch("nilcc_verifier.providers.nilcc.requests.get")
def test_api_client_error_message(mock_get, fake_response):
    mock_get.return_value = fake_response(401, {"message": "Invalid API key"})
    with pytest.raises(NilccApiError) as info:
        NilccApiClient("bad").list_workloads()
    assert info.value.message == "Invalid API key"
    assert info.value.status_code == 401


def test_parse_report_tolerates_malformed_environment():
    report = parse_report({"raw_report": "R", "report": "x", "environment": "x"})
    assert report.raw_report == "R"
    assert report.measurement is None
    assert report.nilcc_version == ""
    assert report.cpu_count == 0


@patch("nilcc_verifier.providers.nilcc.requests.get")
def test_api_client_tiers_artifacts_and_workload(mock_get, fake_response):
    client = NilccApiClient("key-123", "https://api.example")

    mock_get.return_value = fake_response(
        200, [{"tierId": "t1", "name": "small", "cpus": 2, "memoryMb": 2048}]
    )
    tiers = client.list_workload_tiers()
    assert tiers[0].tier_id == "t1"
    assert tiers[0].cpus == 2
    assert tiers[0].memory_mb == 2048
    assert mock_get.call_args.args[0] == "https://api.example/api/v1/workload-tiers/list"

    mock_get.return_value = fake_response(200, [{"version": "0.3.6", "builtAt": "2025-01-01"}])
    assert [a.version for a in client.list_artifacts()] == ["0.3.6"]
    assert mock_get.call_args.args[0] == "https://api.example/api/v1/artifacts/list"

    mock_get.return_value = fake_response(200, {"workloadId": "w1", "domain": "w1.example"})
    assert client.get_workload("w1").domain == "w1.example"
    assert mock_get.call_args.args[0] == "https://api.example/api/v1/workloads/w1"
