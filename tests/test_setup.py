"""
Smoke tests to verify project setup
Tests configuration, table creation and database connectivity
"""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from curation.app.config import Config, get_config, reload_config, validate_config
from curation.infrastructure.database import Base


class TestConfiguration:
    """Test configuration system"""

    def test_config_loads(self):
        """Test that configuration loads correctly"""
        config = get_config()
        assert config is not None
        assert config.api.port == 8000
        print("\n✅ Configuration loads successfully")

    def test_config_validation(self):
        """Test configuration validation"""
        result = validate_config()

        print(f"\n📋 Validation Result:")
        print(f"  Valid: {result['valid']}")

        if result["errors"]:
            print(f"  Errors: {result['errors']}")

        if result["warnings"]:
            print(f"  Warnings: {result['warnings']}")

        assert isinstance(result, dict)
        assert "valid" in result
        assert "errors" in result
        assert "warnings" in result

    def test_config_summary(self):
        """Test configuration summary generation"""
        summary = get_config().get_summary()

        for key in ("api", "database", "activity", "notifications", "sharing"):
            assert key in summary

        print("\n📋 Configuration Summary:")
        for key, value in summary.items():
            print(f"  {key}: {value}")

    def test_config_reload(self):
        """Test that reloading replaces the global instance"""
        before = get_config()
        config = reload_config()

        assert config is not before
        assert config is get_config()
        assert config.get("no.such.key", "fallback") == "fallback"

    def test_activity_defaults(self):
        """Test aggregation and retention defaults"""
        config = get_config()

        assert config.activity.aggregation_window_hours == 6
        assert config.activity.max_conflict_retries == 3
        assert config.activity.retention_days == 90
        assert config.notifications.retention_days == 30



class TestConfigLayers:
    """YAML sections feed settings groups; environment wins"""

    @pytest.fixture
    def yaml_path(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text(
            "app:\n"
            "  env: staging\n"
            "activity:\n"
            "  aggregation_window_hours: 12\n"
            "  not_a_field: 1\n"
            "sharing:\n"
            "  embed_height: 480\n"
        )
        return path

    def test_yaml_section_overrides_defaults(self, yaml_path, monkeypatch):
        monkeypatch.delenv("ACTIVITY_AGGREGATION_WINDOW_HOURS", raising=False)
        config = Config(str(yaml_path))

        assert config.activity.aggregation_window_hours == 12
        assert config.sharing.embed_height == 480
        assert config.environment == "staging"
        assert config.get("activity.not_a_field") == 1

    def test_environment_beats_yaml(self, yaml_path, monkeypatch):
        monkeypatch.setenv("ACTIVITY_AGGREGATION_WINDOW_HOURS", "2")
        config = Config(str(yaml_path))

        assert config.activity.aggregation_window_hours == 2

    def test_missing_file_uses_defaults(self, tmp_path):
        config = Config(str(tmp_path / "absent.yaml"))

        assert config.yaml_config == {}
        assert config.environment == "development"
        assert config.sharing.default_temporary_hours == 168

    def test_to_dict_covers_every_group(self, yaml_path):
        data = Config(str(yaml_path)).to_dict()

        assert set(data) == set(Config.SECTIONS)
        assert data["sharing"]["embed_height"] == 480
        assert data["celery"]["task_default_queue"] == "maintenance"

    def test_invalid_window_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("activity:\n  aggregation_window_hours: 48\n")

        with pytest.raises(ValueError):
            Config(str(path))

    def test_inconsistent_feed_limits_invalid(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ACTIVITY_MAX_FEED_LIMIT", "5")
        config = Config(str(tmp_path / "absent.yaml"))

        result = validate_config(config)

        assert result["valid"] is False
        assert any("Feed max limit" in e for e in result["errors"])


class TestDatabase:
    """Test database connectivity"""

    @pytest.mark.asyncio
    async def test_tables_created(self):
        """Test that every model table is created"""
        import curation.app.models  # noqa: F401

        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            tables = await conn.run_sync(lambda sync: inspect(sync).get_table_names())
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar_one() == 1
        await engine.dispose()

        for table in ("users", "activity_logs", "notifications", "collection_shares"):
            assert table in tables

        print(f"\n✅ {len(tables)} tables created")

    def test_database_config(self):
        """Test database configuration"""
        config = get_config()

        assert config.database.url is not None
        assert len(config.database.url) > 0

        print(f"\n📊 Database URL: {config.database.url}")
