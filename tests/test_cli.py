"""Tests for the click CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import httpx
import pytest
from click.testing import CliRunner

from agentlink import cli as cli_module
from agentlink.client import StreamClient
from agentlink.cli import cli

from conftest import sse_stream


@pytest.fixture
def runner(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.setattr(cli_module, "console", None)
    return CliRunner()


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch):
    """Route CLI clients to a mock backend; returns the recorded requests."""
    requests: List[httpx.Request] = []
    responses = {}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.get(request.url.path, httpx.Response(200))

    def make_client(config):
        return StreamClient("http://backend.test", token=config.get("api_key"), transport=httpx.MockTransport(handler))

    monkeypatch.setattr(cli_module, "make_client", make_client)
    return requests, responses


class TestConfigCommand:
    """Test `agentlink config`."""

    def test_no_changes(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "No configuration changes" in result.output

    def test_saves_values(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(
            cli,
            ["config", "--backend-url", "http://b.test", "--provider", "openai", "--model-api-key", "sk-123"],
        )
        assert result.exit_code == 0
        saved = json.loads(isolated_config.read_text())
        assert saved == {"backend_url": "http://b.test", "provider": "openai", "model_api_key": "sk-123"}

    def test_api_key_set_and_cleared(self, runner: CliRunner, isolated_config: Path) -> None:
        runner.invoke(cli, ["config", "--api-key", "tok"])
        assert json.loads(isolated_config.read_text())["api_key"] == "tok"

        result = runner.invoke(cli, ["config", "--clear-api-key"])
        assert result.exit_code == 0
        assert "api_key" not in json.loads(isolated_config.read_text())

    def test_show_masks_secrets(self, runner: CliRunner) -> None:
        runner.invoke(cli, ["config", "--model-api-key", "sk-verysecretkey"])
        result = runner.invoke(cli, ["config", "--show"])
        assert result.exit_code == 0
        assert "http://localhost:8000" in result.output
        assert "sk-verysecretkey" not in result.output

    def test_rejects_unknown_provider(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["config", "--provider", "nope"])
        assert result.exit_code != 0


class TestControlCommands:
    """Test the one-shot control commands."""

    def test_stop(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        result = runner.invoke(cli, ["stop", "p-1"])
        assert result.exit_code == 0
        assert (requests[0].method, requests[0].url.path) == ("DELETE", "/chat/p-1")

    def test_skip(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        assert runner.invoke(cli, ["skip", "p-1"]).exit_code == 0
        assert requests[0].url.path == "/chat/p-1/skip-task"

    def test_remove_task(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        assert runner.invoke(cli, ["remove-task", "p-1", "t-2"]).exit_code == 0
        assert (requests[0].method, requests[0].url.path) == ("DELETE", "/chat/p-1/remove-task/t-2")

    def test_add_task(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        result = runner.invoke(cli, ["add-task", "p-1", "write docs", "--insert-position", "1"])
        assert result.exit_code == 0
        assert json.loads(requests[0].content) == {
            "content": "write docs",
            "project_id": "p-1",
            "insert_position": 1,
        }

    def test_add_independent_task(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        runner.invoke(cli, ["add-task", "p-1", "write docs", "--independent"])
        assert json.loads(requests[0].content)["is_independent"] is True

    def test_improve(self, runner: CliRunner, backend) -> None:
        requests, _ = backend
        result = runner.invoke(cli, ["improve", "p-1", "and tests", "--attach", "a.png"])
        assert result.exit_code == 0
        assert json.loads(requests[0].content) == {"question": "and tests", "attaches": ["a.png"]}

    def test_backend_error_exits_nonzero(self, runner: CliRunner, backend) -> None:
        _, responses = backend
        responses["/chat/p-1"] = httpx.Response(404, text="unknown project")
        result = runner.invoke(cli, ["stop", "p-1"])
        assert result.exit_code == 1
        assert "unknown project" in result.output


class TestRunCommand:
    """Test `agentlink run`."""

    def test_completed_task(self, runner: CliRunner, backend, workspace: Path) -> None:
        requests, responses = backend
        responses["/chat"] = httpx.Response(
            200,
            content=sse_stream(
                ("confirmed", {}),
                ("execute_file_write", {"request_id": "w1", "path": "out.txt", "content": "done"}),
                ("end", {"result": "All done"}),
            ),
        )

        result = runner.invoke(cli, ["run", "make out.txt", "--project-dir", str(workspace)])

        assert result.exit_code == 0, result.output
        assert (workspace / "out.txt").read_text() == "done"
        body = json.loads(requests[0].content)
        assert body["question"] == "make out.txt"
        assert body["file_save_path"] == str(workspace.resolve())
        assert requests[1].url.path.endswith("/tool-result")
        assert "All done" in result.output

    def test_rejected_task_exits_with_error(self, runner: CliRunner, backend, workspace: Path) -> None:
        _, responses = backend
        responses["/chat"] = httpx.Response(500, text="backend down")

        result = runner.invoke(cli, ["run", "anything", "--project-dir", str(workspace)])

        assert result.exit_code == 1
        assert "backend down" in result.output

    def test_missing_project_dir(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["run", "q", "--project-dir", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestRunAsk:
    """Test answering an `ask` event from the terminal."""

    @pytest.fixture
    def ask_stream(self, backend):
        requests, responses = backend
        responses["/chat"] = httpx.Response(
            200,
            content=sse_stream(
                ("ask", {"agent": "developer_agent", "question": "Proceed?"}),
                ("end", {"result": "All done"}),
            ),
        )
        return requests

    def replies(self, requests: List[httpx.Request]) -> List[dict]:
        return [json.loads(r.content) for r in requests if r.url.path.endswith("/human-reply")]

    def test_typed_reply_is_sent(self, runner: CliRunner, ask_stream, workspace: Path) -> None:
        result = runner.invoke(cli, ["run", "q", "--project-dir", str(workspace)], input="go ahead\n")

        assert result.exit_code == 0, result.output
        project_id = json.loads(ask_stream[0].content)["project_id"]
        reply_request = next(r for r in ask_stream if r.url.path.endswith("/human-reply"))
        assert reply_request.url.path == f"/chat/{project_id}/human-reply"
        assert self.replies(ask_stream) == [{"agent": "developer_agent", "reply": "go ahead"}]

    def test_blank_reply_prompts_again(self, runner: CliRunner, ask_stream, workspace: Path) -> None:
        result = runner.invoke(cli, ["run", "q", "--project-dir", str(workspace)], input="\n  \nyes\n")

        assert result.exit_code == 0, result.output
        assert "A reply is required" in result.output
        assert self.replies(ask_stream) == [{"agent": "developer_agent", "reply": "yes"}]

    def test_closed_input_aborts_task(self, runner: CliRunner, ask_stream, workspace: Path) -> None:
        result = runner.invoke(cli, ["run", "q", "--project-dir", str(workspace)], input="")

        assert result.exit_code == 130, result.output
        assert "Task aborted" in result.output
        assert self.replies(ask_stream) == []
        project_id = json.loads(ask_stream[0].content)["project_id"]
        stops = [r for r in ask_stream if r.method == "DELETE"]
        assert [r.url.path for r in stops] == [f"/chat/{project_id}"]
