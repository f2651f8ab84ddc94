"""
Unit tests for ci_client.client and ci_client.cli.

HTTP calls are mocked; the tests check request construction, error
mapping and CLI output.
"""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from ci_client import cli
from ci_client.client import get_recipients, prune_builds, record_build


def mock_response(status_code, payload):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = json.dumps(payload)
    return response


REPORT = {
    "job": "jobB",
    "number": 3,
    "outcome": "FAILURE",
    "anchor": 1,
    "providers": ["upstream-committers-since-last-success"],
    "identities": [{"name": "Second", "address": "second@example.com"}],
    "recipients": ["second@example.com"],
}


class TestRecordBuild:
    """Test suite for record_build."""

    @patch("ci_client.client.requests.post")
    def test_posts_payload(self, mock_post):
        mock_post.return_value = mock_response(201, {"job": "jobB", "number": 2})

        result = record_build(
            "jobB",
            2,
            "failure",
            changes=["Jane <jane@example.com>"],
            causes=[("jobA", 7)],
            server_url="http://ci:9000",
        )

        assert result == {"job": "jobB", "number": 2}
        args, kwargs = mock_post.call_args
        assert args[0] == "http://ci:9000/builds"
        assert kwargs["json"] == {
            "job": "jobB",
            "number": 2,
            "outcome": "FAILURE",
            "changes": ["Jane <jane@example.com>"],
            "causes": [{"job": "jobA", "number": 7}],
        }

    @patch("ci_client.client.requests.post")
    def test_conflict_raises(self, mock_post):
        mock_post.return_value = mock_response(409, {"detail": "Build jobB#1 is not newer"})

        with pytest.raises(RuntimeError, match="409"):
            record_build("jobB", 1, "SUCCESS")

    @patch("ci_client.client.requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RuntimeError, match="Error connecting"):
            record_build("jobB", 1, "SUCCESS")


class TestGetRecipients:
    """Test suite for get_recipients."""

    @patch("ci_client.client.requests.get")
    def test_returns_report(self, mock_get):
        mock_get.return_value = mock_response(200, REPORT)

        report = get_recipients("jobB", 3, providers=["developers"])

        assert report == REPORT
        args, kwargs = mock_get.call_args
        assert args[0] == "http://localhost:8000/jobs/jobB/builds/3/recipients"
        assert kwargs["params"] == {"provider": ["developers"]}

    @patch("ci_client.client.requests.get")
    def test_default_providers_sends_no_params(self, mock_get):
        mock_get.return_value = mock_response(200, REPORT)

        get_recipients("jobB", 3)

        assert mock_get.call_args.kwargs["params"] == {}

    @patch("ci_client.client.requests.get")
    def test_not_found(self, mock_get):
        mock_get.return_value = mock_response(404, {"detail": "Build not found"})

        with pytest.raises(RuntimeError, match="Build not found"):
            get_recipients("jobB", 99)


class TestPruneBuilds:
    """Test suite for prune_builds."""

    @patch("ci_client.client.requests.delete")
    def test_prunes_through_server(self, mock_delete):
        mock_delete.return_value = mock_response(
            200, {"job": "jobB", "deleted": 4, "retained": 1}
        )

        result = prune_builds("jobB", 1, server_url="http://ci:9000")

        assert result["deleted"] == 4
        args, kwargs = mock_delete.call_args
        assert args[0] == "http://ci:9000/jobs/jobB/builds"
        assert kwargs["params"] == {"keep": 1}

    @patch("ci_client.client.requests.delete")
    def test_rejected(self, mock_delete):
        mock_delete.return_value = mock_response(422, {"detail": "keep must be >= 0"})

        with pytest.raises(RuntimeError, match="422"):
            prune_builds("jobB", 1)


class TestCli:
    """Test suite for the ci-notify command line."""

    @patch("ci_client.cli.get_recipients")
    def test_recipients_text(self, mock_get, capsys):
        mock_get.return_value = REPORT

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["recipients", "jobB", "3"])

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Anchor: #1" in out
        assert "second@example.com" in out

    @patch("ci_client.cli.get_recipients")
    def test_recipients_json(self, mock_get, capsys):
        mock_get.return_value = REPORT

        with pytest.raises(SystemExit):
            cli.main(["recipients", "jobB", "3", "--json"])

        assert json.loads(capsys.readouterr().out) == REPORT

    @patch("ci_client.cli.get_recipients")
    def test_recipients_error(self, mock_get, capsys):
        mock_get.side_effect = RuntimeError("Failed to resolve recipients (404)")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["recipients", "jobB", "3"])

        assert exc_info.value.code == 1
        assert "404" in capsys.readouterr().err

    @patch("ci_client.cli.record_build")
    def test_record(self, mock_record, capsys):
        mock_record.return_value = {"job": "jobB", "number": 2, "outcome": "FAILURE"}

        with pytest.raises(SystemExit) as exc_info:
            cli.main(
                [
                    "record",
                    "--job",
                    "jobB",
                    "--number",
                    "2",
                    "--outcome",
                    "failure",
                    "--cause",
                    "jobA#5",
                ]
            )

        assert exc_info.value.code == 0
        assert mock_record.call_args.kwargs["causes"] == [("jobA", 5)]
        assert "Recorded jobB#2 (FAILURE)" in capsys.readouterr().out

    def test_record_bad_cause(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(
                ["record", "--job", "jobB", "--number", "2", "--outcome", "SUCCESS", "--cause", "bad"]
            )

        assert exc_info.value.code == 2
        assert "JOB#NUMBER" in capsys.readouterr().err

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])

        assert exc_info.value.code == 1

    @patch("ci_client.cli.prune_builds")
    def test_prune(self, mock_prune, capsys):
        mock_prune.return_value = {"job": "jobB", "deleted": 2, "retained": 3}

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["prune", "jobB", "--keep", "3"])

        assert exc_info.value.code == 0
        assert mock_prune.call_args.args == ("jobB", 3)
        assert "Pruned 2 build(s) of jobB, 3 retained" in capsys.readouterr().out

    def test_prune_negative_keep(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["prune", "jobB", "--keep", "-1"])

        assert exc_info.value.code == 2
