"""
Tests for the ESC-backed config and secrets store.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from fargatestack.esc import EscClient
from fargatestack.models import CommandError, CommandResult, MissingConfigError


def _result(cmd=None, exit_code=0, stdout="", stderr=""):
    return CommandResult(command=cmd or ["esc"], exit_code=exit_code, stdout=stdout, stderr=stderr)


@pytest.fixture
def client(test_config, token, quiet_log_handler):
    return EscClient(test_config, "acme/demo/test", token, log_handler=quiet_log_handler)


class TestEscClient:
    """Test EscClient command construction and result handling."""

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_set_config(self, mock_run, client, token):
        mock_run.return_value = _result()

        asyncio.run(client.set_config("ecrRepo", "repo-123"))

        cmd = mock_run.call_args.args[0]
        assert cmd == ["esc", "env", "set", "acme/demo/test", "pulumiConfig.ecrRepo", "repo-123"]
        env = mock_run.call_args.kwargs["env"]
        assert env["PULUMI_ACCESS_TOKEN"] == token.get_secret_value()

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_token_never_on_command_line(self, mock_run, client, token):
        mock_run.return_value = _result(stdout="v1\n")

        asyncio.run(client.get_config("ecrTag"))

        assert token.get_secret_value() not in " ".join(mock_run.call_args.args[0])

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_get_config_strips_value(self, mock_run, client):
        mock_run.return_value = _result(stdout="us-west-2\n")

        assert asyncio.run(client.get_config("awsRegion")) == "us-west-2"
        cmd = mock_run.call_args.args[0]
        assert cmd[:5] == ["esc", "env", "get", "acme/demo/test", "pulumiConfig.awsRegion"]
        assert mock_run.call_args.kwargs["check"] is False

    @pytest.mark.parametrize("stdout", ["", "\n", "null\n"])
    def test_get_config_missing_value(self, client, stdout):
        with patch("fargatestack.esc.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = _result(stdout=stdout)

            with pytest.raises(MissingConfigError) as exc_info:
                asyncio.run(client.get_config("ecrTag"))

        assert exc_info.value.key == "ecrTag"
        assert exc_info.value.environment == "acme/demo/test"

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_get_config_not_found_error(self, mock_run, client):
        mock_run.return_value = _result(exit_code=1, stderr="Error: path pulumiConfig.ecrTag not found\n")

        with pytest.raises(MissingConfigError):
            asyncio.run(client.get_config("ecrTag"))

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_get_config_other_failure(self, mock_run, client):
        mock_run.return_value = _result(exit_code=1, stderr="Error: unauthorized\n")

        with pytest.raises(CommandError, match="unauthorized"):
            asyncio.run(client.get_config("ecrTag"))

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_open_exposes_secret_env_vars(self, mock_run, client):
        mock_run.return_value = _result(
            stdout=json.dumps(
                {
                    "environmentVariables": {
                        "AWS_ACCESS_KEY_ID": "ASIAEXAMPLE",
                        "AWS_SECRET_ACCESS_KEY": "secret",
                    },
                    "pulumiConfig": {"ecrTag": "v1"},
                }
            )
        )

        session = asyncio.run(client.open())

        assert session.get_secret_env_var("AWS_ACCESS_KEY_ID") == "ASIAEXAMPLE"
        assert mock_run.call_args.args[0] == [
            "esc", "env", "open", "acme/demo/test", "--format", "json",
        ]
        assert mock_run.call_args.kwargs["log_handler"] is None
        with pytest.raises(MissingConfigError):
            session.get_secret_env_var("AWS_SESSION_TOKEN")

    @patch("fargatestack.esc.run_command", new_callable=AsyncMock)
    def test_session_repr_hides_values(self, mock_run, client):
        mock_run.return_value = _result(
            stdout=json.dumps({"environmentVariables": {"AWS_SECRET_ACCESS_KEY": "topsecret"}})
        )

        session = asyncio.run(client.open())

        assert "topsecret" not in repr(session)
        assert "AWS_SECRET_ACCESS_KEY" in repr(session)
