"""CLI tests: every command runs against shared in-memory storage."""

import json

import pytest
from typer.testing import CliRunner

import cli.utils
from cli.main import app
from promptopt.llm import MockProvider
from promptopt.services import build_services
from promptopt.storage import MemoryStorageProvider

runner = CliRunner()


@pytest.fixture
def provider(mock_config):
    return MockProvider(mock_config, response="Improved prompt")


@pytest.fixture(autouse=True)
def in_memory_services(monkeypatch, settings, model_defaults, provider):
    storage = MemoryStorageProvider()

    def factory():
        return build_services(settings, storage=storage, model_defaults=model_defaults, providers={"mock": provider})

    monkeypatch.setattr(cli.utils, "services_factory", factory)
    return storage


def invoke(*args, input=None):
    return runner.invoke(app, list(args), input=input)


def invoke_json(*args):
    result = invoke(*args, "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


class TestOptimize:
    def test_optimize_json(self):
        chain = invoke_json("optimize", "write a poem")
        assert chain["current_record"]["optimized_prompt"] == "Improved prompt"
        assert chain["current_record"]["model_key"] == "mock"

    def test_optimize_from_file(self, tmp_path):
        prompt_file = tmp_path / "prompt.txt"
        prompt_file.write_text("summarize this", encoding="utf-8")
        chain = invoke_json("optimize", "--file", str(prompt_file))
        assert chain["root_record"]["original_prompt"] == "summarize this"

    def test_optimize_stream_prints_tokens(self):
        result = invoke("optimize", "write a poem", "--stream")
        assert result.exit_code == 0, result.output
        assert "Improved prompt" in result.output
        assert "Chain:" in result.output

    def test_missing_prompt(self):
        result = invoke("optimize")
        assert result.exit_code == 1
        assert "Provide the prompt" in result.output

    def test_unknown_model(self):
        result = invoke("optimize", "write", "--model", "ghost")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_no_enabled_model(self):
        invoke("models", "disable", "mock")
        result = invoke("optimize", "write")
        assert result.exit_code == 1
        assert "No enabled model" in result.output


class TestIterate:
    def test_iterate_json(self):
        chain_id = invoke_json("optimize", "write a poem")["chain_id"]
        chain = invoke_json("iterate", chain_id, "make it rhyme")
        assert [v["version"] for v in chain["versions"]] == [1, 2]
        assert chain["current_record"]["iteration_note"] == "make it rhyme"

    def test_unknown_chain(self):
        result = invoke("iterate", "missing", "shorter")
        assert result.exit_code == 1
        assert "Iteration failed" in result.output


class TestTestCommand:
    def test_prints_result(self):
        result = invoke("test", "Translate to French", "--input", "Hello")
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Improved prompt"
        assert invoke_json("history", "list") == []


class TestHistoryCommands:
    def test_list_show_and_search(self):
        record_id = invoke_json("optimize", "write a poem")["current_record"]["id"]
        invoke_json("optimize", "draft an email")

        assert len(invoke_json("history", "list")) == 2
        assert [r["original_prompt"] for r in invoke_json("history", "list", "-q", "EMAIL")] == ["draft an email"]
        assert invoke_json("history", "show", record_id)["id"] == record_id

    def test_show_missing(self):
        result = invoke("history", "show", "nope")
        assert result.exit_code == 1
        assert "Record not found" in result.output

    def test_chains_and_lineage(self):
        chain_id = invoke_json("optimize", "write a poem")["chain_id"]
        current_id = invoke_json("iterate", chain_id, "shorter")["current_record"]["id"]

        [summary] = invoke_json("history", "chains")
        assert summary == {"chain_id": chain_id, "versions": 2, "current_version": 2, "current_id": current_id}
        assert [r["version"] for r in invoke_json("history", "lineage", current_id)] == [1, 2]
        assert invoke_json("history", "chain", chain_id)["chain_id"] == chain_id

    def test_delete_chain(self):
        chain_id = invoke_json("optimize", "write a poem")["chain_id"]
        result = invoke("history", "delete-chain", chain_id)
        assert result.exit_code == 0
        assert "Deleted 1 records" in result.output
        assert invoke("history", "delete-chain", chain_id).exit_code == 1

    def test_clear_requires_confirmation(self):
        invoke_json("optimize", "write a poem")
        assert invoke("history", "clear", input="n\n").exit_code == 0
        assert len(invoke_json("history", "list")) == 1
        assert invoke("history", "clear", "--yes").exit_code == 0
        assert invoke_json("history", "list") == []


class TestModelCommands:
    def test_list_masks_keys(self):
        [model] = invoke_json("models", "list")
        assert model["key"] == "mock"
        assert model["api_key"] == "****7890"

    def test_disable_then_enable(self):
        assert invoke("models", "disable", "mock").exit_code == 0
        assert invoke_json("models", "list", "--enabled") == []
        assert invoke("models", "enable", "mock").exit_code == 0
        assert len(invoke_json("models", "list", "--enabled")) == 1

    def test_set_key(self):
        assert invoke("models", "set-key", "mock", "--api-key", "new-secret-key-abcd").exit_code == 0
        assert invoke_json("models", "list")[0]["api_key"] == "****abcd"

    def test_ping(self):
        result = invoke("models", "ping", "mock")
        assert result.exit_code == 0
        assert "Improved prompt" in result.output


class TestTemplateCommands:
    def test_list_and_show(self):
        result = invoke("templates", "show", "iterate")
        assert result.exit_code == 0
        assert "Type: iterate" in result.output

    def test_export_import_delete(self, tmp_path):
        exported = invoke("templates", "export", "general-optimize")
        assert exported.exit_code == 0
        data = json.loads(exported.output)
        data["id"] = "my-copy"
        path = tmp_path / "tmpl.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        assert invoke("templates", "import", str(path)).exit_code == 0
        assert invoke("templates", "show", "my-copy").exit_code == 0
        assert invoke("templates", "delete", "my-copy").exit_code == 0
        assert invoke("templates", "show", "my-copy").exit_code == 1

    def test_delete_builtin_fails(self):
        assert invoke("templates", "delete", "iterate").exit_code == 1


class TestDataCommands:
    def test_export_then_import(self, tmp_path):
        invoke_json("optimize", "write a poem")
        out = tmp_path / "backup.json"
        assert invoke("data", "export", "--out", str(out)).exit_code == 0

        invoke("history", "clear", "--yes")
        result = invoke("data", "import", str(out))
        assert result.exit_code == 0, result.output
        assert "1 records" in result.output
        assert len(invoke_json("history", "list")) == 1

    def test_import_invalid(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{oops", encoding="utf-8")
        result = invoke("data", "import", str(path))
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


class TestCompareCommand:
    def test_json(self, tmp_path):
        a = tmp_path / "a.txt"
        b = tmp_path / "b.txt"
        a.write_text("the cat sat", encoding="utf-8")
        b.write_text("the dog sat", encoding="utf-8")
        data = invoke_json("compare", str(a), str(b))
        assert data["summary"] == {"additions": 1, "deletions": 1, "unchanged": 2}

    def test_bad_granularity(self, tmp_path):
        a = tmp_path / "a.txt"
        a.write_text("x", encoding="utf-8")
        result = invoke("compare", str(a), str(a), "-g", "line")
        assert result.exit_code == 1


def test_version():
    result = invoke("version")
    assert result.exit_code == 0
    assert result.output.strip()
