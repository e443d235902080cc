import io
import json

import pytest

from trifle import cli
from trifle.sdk import TrifleAPIError
from trifle.version import __version__

CONN = ["--url", "http://trifle.test", "--token", "tok-123"]
WINDOW = ["--from", "2024-01-01T00:00:00Z", "--to", "2024-01-02T00:00:00Z"]


@pytest.fixture
def connected(monkeypatch, fake_client):
    configs = []

    def _make_client(config):
        configs.append(config)
        return fake_client

    monkeypatch.setattr(cli, "make_client", _make_client)
    fake_client.configs = configs
    return fake_client


def test_version(capsys):
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_flags_override_environment(monkeypatch, connected, capsys):
    monkeypatch.setenv("TRIFLE_URL", "http://env.test")
    monkeypatch.setenv("TRIFLE_TOKEN", "env-token")

    assert cli.main(["transponders", "list", *CONN, "--timeout", "5s"]) == 0

    config = connected.configs[0]
    assert config.base_url == "http://trifle.test"
    assert config.token == "tok-123"
    assert config.timeout == 5.0
    assert json.loads(capsys.readouterr().out) == {"data": []}


def test_token_from_environment(monkeypatch, connected):
    monkeypatch.setenv("TRIFLE_URL", "http://env.test")
    monkeypatch.setenv("TRIFLE_TOKEN", "env-token")

    assert cli.main(["transponders", "list"]) == 0
    assert connected.configs[0].token == "env-token"
    assert connected.configs[0].base_url == "http://env.test"


def test_missing_token_is_prompted(monkeypatch, connected, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("typed-token\n"))

    assert cli.main(["transponders", "list", "--url", "http://trifle.test"]) == 0

    assert connected.configs[0].token == "typed-token"
    assert "Trifle token: " in capsys.readouterr().err


def test_mcp_never_prompts(monkeypatch, connected, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("typed-token\n"))

    assert cli.main(["mcp", "--url", "http://trifle.test"]) == 1

    assert "missing token: set --token or TRIFLE_TOKEN" in capsys.readouterr().err
    assert connected.configs == []


def test_mcp_serves_stdio(monkeypatch, connected):
    served = []
    monkeypatch.setattr(cli, "serve_stdio", lambda client, identity: served.append((client, identity)))

    assert cli.main(["mcp", *CONN]) == 0

    client, identity = served[0]
    assert client is connected
    assert identity.name == "trifle-cli"
    assert identity.version == __version__
    assert connected.closed is True


def test_invalid_timeout_is_a_usage_error():
    with pytest.raises(SystemExit) as exc:
        cli.main(["transponders", "list", *CONN, "--timeout", "soon"])
    assert exc.value.code == 2


def test_metrics_keys_csv(connected, capsys):
    connected.metrics = {"data": {"values": [{"keys": {"b": 1, "a": 2}}, {"keys": {"a": 3}}]}}

    assert cli.main(["metrics", "keys", *CONN, *WINDOW, "--format", "CSV"]) == 0

    assert capsys.readouterr().out == "metric_key,observations\na,5\nb,1\n"
    assert connected.calls_to("get_metrics")[0]["granularity"] == "1h"


def test_metrics_keys_json(connected, capsys):
    connected.metrics = {"data": {"values": [{"keys": {"a": 2}}]}}

    assert cli.main(["metrics", "keys", *CONN, *WINDOW, "--granularity", "1d"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["paths"] == [{"metric_key": "a", "observations": 2}]
    assert payload["timeframe"]["granularity"] == "1d"


def test_metrics_get_with_key(connected, capsys):
    connected.metrics = {"data": {"values": [{"count": 1}]}}

    assert cli.main(["metrics", "get", *CONN, *WINDOW, "--key", "signups"]) == 0

    params = connected.calls_to("get_metrics")[0]
    assert params["key"] == "signups"
    assert params["from"] == "2024-01-01T00:00:00Z"
    assert json.loads(capsys.readouterr().out) == connected.metrics


def test_metrics_get_one_sided_window(connected, capsys):
    assert cli.main(["metrics", "get", *CONN, "--from", "2024-01-01T00:00:00Z"]) == 1

    assert "from and to are required together" in capsys.readouterr().err
    assert connected.calls == []


def test_metrics_aggregate_payload(connected, capsys):
    connected.query = {"data": {"value": 10}}

    assert cli.main([
        "metrics", "aggregate", *CONN, *WINDOW,
        "--key", "signups", "--value-path", "count", "--aggregator", "MEAN",
    ]) == 0

    sent = connected.calls_to("query_metrics")[0]
    assert sent["mode"] == "aggregate"
    assert sent["aggregator"] == "mean"
    assert sent["slices"] == 1
    assert json.loads(capsys.readouterr().out) == {"value": 10}


def test_metrics_aggregate_requires_aggregator(connected, capsys):
    assert cli.main(["metrics", "aggregate", *CONN, "--key", "signups", "--value-path", "count"]) == 1

    assert "--key, --value-path, and --aggregator are required" in capsys.readouterr().err


def test_metrics_timeline_table(connected, capsys):
    connected.query = {"data": {"table": {"columns": ["at", "count"], "rows": [["t1", 3]]}}}

    assert cli.main([
        "metrics", "timeline", *CONN, *WINDOW,
        "--key", "signups", "--value-path", "count", "--slices", "2", "--format", "table",
    ]) == 0

    assert capsys.readouterr().out.splitlines() == ["at  count", "--  -----", "t1  3"]
    sent = connected.calls_to("query_metrics")[0]
    assert sent["slices"] == 2
    assert "aggregator" not in sent


def test_metrics_category_requires_value_path(connected, capsys):
    assert cli.main(["metrics", "category", *CONN, "--key", "signups"]) == 1

    assert "--key and --value-path are required" in capsys.readouterr().err


def test_metrics_push(connected, capsys):
    assert cli.main([
        "metrics", "push", *CONN, "--key", "signups",
        "--values", '{"count": 1}', "--at", "2024-01-02T15:04:05Z",
    ]) == 0

    assert connected.calls_to("post_metrics") == [
        {"key": "signups", "at": "2024-01-02T15:04:05Z", "values": {"count": 1}}
    ]
    assert json.loads(capsys.readouterr().out) == {"status": "ok"}


def test_metrics_push_values_file(connected, tmp_path):
    values_file = tmp_path / "values.json"
    values_file.write_text('{"count": 2}', encoding="utf-8")

    assert cli.main(["metrics", "push", *CONN, "--key", "signups", "--values-file", str(values_file)]) == 0

    sent = connected.calls_to("post_metrics")[0]
    assert sent["values"] == {"count": 2}
    assert sent["at"].endswith("Z")


@pytest.mark.parametrize(
    "extra, message",
    [
        ([], "--key is required"),
        (["--key", "signups"], "--values or --values-file is required"),
        (["--key", "signups", "--values", "{oops"], "parse JSON payload"),
        (["--key", "signups", "--values", "{}", "--at", "today"], "at must be RFC3339"),
    ],
)
def test_metrics_push_errors(connected, capsys, extra, message):
    assert cli.main(["metrics", "push", *CONN, *extra]) == 1

    assert message in capsys.readouterr().err
    assert connected.calls_to("post_metrics") == []


def test_transponders_create_from_file(connected, tmp_path, capsys):
    payload_file = tmp_path / "transponder.json"
    payload_file.write_text('{"key": "signups", "enabled": true}', encoding="utf-8")

    assert cli.main(["transponders", "create", *CONN, "--payload-file", str(payload_file)]) == 0

    assert connected.calls_to("create_transponder") == [{"key": "signups", "enabled": True}]
    assert json.loads(capsys.readouterr().out)["data"]["id"] == "tr-1"


def test_transponders_update(connected):
    assert cli.main(["transponders", "update", *CONN, "--id", "tr-9", "--payload", '{"enabled": false}']) == 0

    assert connected.calls_to("update_transponder") == [("tr-9", {"enabled": False})]


@pytest.mark.parametrize(
    "argv, message",
    [
        (["transponders", "update", "--payload", "{}"], "--id is required"),
        (["transponders", "update", "--id", "tr-9"], "--payload or --payload-file is required"),
        (["transponders", "create", "--payload", "[1, 2]"], "payload must be a JSON object"),
        (["transponders", "create", "--payload-file", "/nonexistent/trifle.json"], "read payload file"),
    ],
)
def test_transponder_payload_errors(connected, capsys, argv, message):
    assert cli.main([*argv, *CONN]) == 1

    assert message in capsys.readouterr().err
    assert connected.calls == []


def test_backend_errors_exit_nonzero(connected, capsys):
    connected.transponders = TrifleAPIError("unauthorized", status_code=401, path="/transponders")

    assert cli.main(["transponders", "list", *CONN]) == 1
    assert "unauthorized (status=401) [/transponders]" in capsys.readouterr().err


def test_missing_base_url(capsys):
    assert cli.main(["transponders", "list", "--token", "tok"]) == 1

    assert "missing base URL: set --url or TRIFLE_URL" in capsys.readouterr().err
