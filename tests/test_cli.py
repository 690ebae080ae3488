"""Tests for the command line."""

import json
from unittest.mock import patch

from typer.testing import CliRunner

from chatrelay.cli import app
from chatrelay.prompt import STREAM_DIRECTIVE_TEXT

runner = CliRunner()


def test_prompt_prints_assembled_messages():
    body = json.dumps({"messages": [{"role": "user", "content": "Hello there"}]})

    result = runner.invoke(app, ["prompt"], input=body)

    assert result.exit_code == 0
    messages = json.loads(result.stdout)
    assert messages == [
        {"role": "system", "content": STREAM_DIRECTIVE_TEXT},
        {"role": "user", "content": "Hello there"},
    ]


def test_prompt_rejects_malformed_body():
    result = runner.invoke(app, ["prompt"], input='{"messages": [{"role": "robot"}]}')

    assert result.exit_code == 1


def test_prompt_requires_input():
    result = runner.invoke(app, ["prompt"], input="")

    assert result.exit_code == 1


def test_serve_runs_uvicorn_with_app_factory():
    with patch("chatrelay.cli.uvicorn.run") as run:
        result = runner.invoke(app, ["serve", "--port", "9090"])

    assert result.exit_code == 0
    run.assert_called_once()
    args, kwargs = run.call_args
    assert args == ("chatrelay.app:build_app",)
    assert kwargs["factory"] is True
    assert kwargs["port"] == 9090
