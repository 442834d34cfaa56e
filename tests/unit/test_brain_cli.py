"""Tests for the command line interface."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from src.cli import brain_cli
from src.cli.brain_cli import QUERY_FAILED_MESSAGE, build_services, cli
from src.core.config import BrainConfig, Settings, reset_settings
from src.core.exceptions import ProviderUnavailable
from src.database.memory_repository import SQLiteMemoryRepository
from src.memory.models import QueryResponse


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "brain.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BRAIN_DATABASE_PATH", str(path))
    monkeypatch.setenv("APP_LOG_LEVEL", "ERROR")
    reset_settings()
    yield str(path)
    reset_settings()


def seed(path, count):
    async def run():
        repo = SQLiteMemoryRepository(path)
        for idx in range(count):
            await repo.create(
                url=f"https://site{idx % 2}.com/{idx}",
                title=f"Page {idx}",
                summary="s",
                embedding=[1.0, float(idx)],
            )
    asyncio.run(run())


class TestBuildServices:
    def test_wires_independent_instances(self, tmp_path):
        settings = Settings(brain=BrainConfig(database_path=str(tmp_path / "a.db")))

        first = build_services(settings)
        second = build_services(settings)

        assert first.ai is not second.ai
        assert first.query.search is first.search
        assert first.capture.repository is first.repository
        assert first.crypto.is_initialized()

    def test_encryption_disabled(self, tmp_path):
        settings = Settings(
            brain=BrainConfig(database_path=str(tmp_path / "b.db"), encryption_enabled=False)
        )
        assert not build_services(settings).crypto.is_initialized()

    def test_random_key_shared_across_processes(self, tmp_path):
        db = tmp_path / "a.db"
        settings = Settings(brain=BrainConfig(database_path=str(db)))

        writer = build_services(settings)
        token = asyncio.run(writer.crypto.encrypt("summary from yesterday"))
        reader = build_services(settings)

        assert asyncio.run(reader.crypto.decrypt(token)) == "summary from yesterday"
        assert (tmp_path / "a.db.key").exists()

    def test_passphrase_skips_key_file(self, tmp_path):
        settings = Settings(brain=BrainConfig(
            database_path=str(tmp_path / "c.db"), encryption_passphrase="correct horse"
        ))

        assert build_services(settings).crypto.is_initialized()
        assert not (tmp_path / "c.db.key").exists()


class TestStatsCommand:
    def test_empty_corpus(self, db_path):
        result = CliRunner().invoke(cli, ["stats", "--json"])

        assert result.exit_code == 0
        assert '"memories": 0' in result.output

    def test_counts_memories_and_domains(self, db_path):
        seed(db_path, 3)

        result = CliRunner().invoke(cli, ["stats", "--json"])

        assert result.exit_code == 0
        start = result.output.index("{")
        data = json.loads(result.output[start:])
        assert data["memories"] == 3
        assert data["domains"] == 2
        assert data["total_visits"] == 3


class TestClustersCommand:
    def test_no_memories(self, db_path):
        result = CliRunner().invoke(cli, ["clusters"])

        assert result.exit_code == 0
        assert "No clusters found" in result.output


def services_with(**ai_overrides):
    """build_services replacement whose AI calls are mocked."""

    def factory(settings):
        services = build_services(settings)
        services.ai.initialize = AsyncMock()
        for name, mock in ai_overrides.items():
            setattr(services.ai, name, mock)
        return services

    return factory


class TestAskCommand:
    def test_answer_printed(self, db_path):
        response = QueryResponse(answer="Rust moves ownership on assignment.", processing_time=12.0)

        with patch.object(brain_cli, "build_services", services_with()):
            with patch("src.services.query_service.QueryService.process_query",
                       AsyncMock(return_value=response)):
                result = CliRunner().invoke(cli, ["ask", "how does ownership work?"])

        assert result.exit_code == 0
        assert "Rust moves ownership on assignment." in result.output
        assert "12 ms" in result.output

    def test_json_output(self, db_path):
        response = QueryResponse(answer="42", processing_time=1.0)

        with patch.object(brain_cli, "build_services", services_with()):
            with patch("src.services.query_service.QueryService.process_query",
                       AsyncMock(return_value=response)):
                result = CliRunner().invoke(cli, ["ask", "meaning?", "--format", "json"])

        assert result.exit_code == 0
        assert '"answer": "42"' in result.output

    def test_embedder_unavailable(self, db_path):
        embed = AsyncMock(side_effect=ProviderUnavailable("ollama", "embedder"))

        with patch.object(brain_cli, "build_services", services_with(embed=embed)):
            result = CliRunner().invoke(cli, ["ask", "anything"])

        assert result.exit_code == 1
        assert QUERY_FAILED_MESSAGE in result.output
        embed.assert_awaited_once()

    def test_unexpected_error_reported(self, db_path):
        embed = AsyncMock(side_effect=RuntimeError("connection reset"))

        with patch.object(brain_cli, "build_services", services_with(embed=embed)):
            result = CliRunner().invoke(cli, ["ask", "anything"])

        assert result.exit_code == 1
        assert QUERY_FAILED_MESSAGE in result.output
