"""Tests for settings loading and logging setup."""

import pytest
import structlog
from pydantic import ValidationError
from structlog.testing import capture_logs

from progression_engine import config as config_module
from progression_engine.config import Settings, flatten_settings
from progression_engine.errors import ConfigurationError, LevelTableError
from progression_engine.log import configure_logging
from progression_engine.models.adaptive import Difficulty
from progression_engine.progression.streak import resolve_timezone
from progression_engine.storage.kv import InMemoryStore, JsonFileStore, build_store
from progression_engine.storage.progress import build_repository


@pytest.fixture
def yaml_root(tmp_path, monkeypatch):
    """Point the YAML source at an isolated project root."""
    (tmp_path / "config").mkdir()
    monkeypatch.setattr(config_module, "_find_project_root", lambda: tmp_path)
    return tmp_path


class TestSettingsDefaults:
    def test_defaults(self, yaml_root):
        settings = Settings(project_root=yaml_root)
        assert settings.max_hearts == 5
        assert settings.heart_regen_minutes == 30
        assert settings.srs_intervals_days == (1, 3, 7, 14, 30, 90)
        assert settings.adaptive_window_size == 5
        assert settings.adaptive_increase_threshold == 0.8
        assert settings.adaptive_decrease_threshold == 0.4
        assert settings.streak_perfect_hours == 12
        assert settings.streak_at_risk_hours == 4
        assert [level.name for level in settings.levels][-1] == "Fluent"

    def test_adaptive_config(self, yaml_root):
        config = Settings(project_root=yaml_root, adaptive_window_size=8).adaptive_config()
        assert config.window_size == 8
        assert config.increase_threshold == 0.8

    def test_env_override(self, yaml_root, monkeypatch):
        monkeypatch.setenv("PROGRESSION_MAX_HEARTS", "3")
        assert Settings(project_root=yaml_root).max_hearts == 3


class TestYamlSource:
    def test_yaml_values_loaded(self, yaml_root):
        (yaml_root / "config" / "settings.yaml").write_text(
            "hearts:\n"
            "  max: 7\n"
            "  regen_minutes: 15\n"
            "adaptive:\n"
            "  window_size: 10\n"
            "xp:\n"
            "  levels:\n"
            "    - {name: Novice, min_xp: 0, max_xp: 50}\n"
            "    - {name: Master, min_xp: 50}\n",
            encoding="utf-8",
        )
        settings = Settings(project_root=yaml_root)
        assert settings.max_hearts == 7
        assert settings.heart_regen_minutes == 15
        assert settings.adaptive_window_size == 10
        assert [level.name for level in settings.levels] == ["Novice", "Master"]

    def test_init_args_beat_yaml(self, yaml_root):
        (yaml_root / "config" / "settings.yaml").write_text("hearts:\n  max: 7\n", encoding="utf-8")
        assert Settings(project_root=yaml_root, max_hearts=2).max_hearts == 2

    def test_invalid_level_table_rejected(self, yaml_root):
        (yaml_root / "config" / "settings.yaml").write_text(
            "xp:\n"
            "  levels:\n"
            "    - {name: A, min_xp: 0, max_xp: 50}\n"
            "    - {name: B, min_xp: 60}\n",
            encoding="utf-8",
        )
        with pytest.raises(LevelTableError):
            Settings(project_root=yaml_root)

    def test_invalid_intervals_rejected(self, yaml_root):
        with pytest.raises(ConfigurationError):
            Settings(project_root=yaml_root, srs_intervals_days=(1, 1, 1, 1, 1, 1))

    def test_inverted_adaptive_thresholds_rejected_at_load(self, yaml_root):
        (yaml_root / "config" / "settings.yaml").write_text(
            "adaptive:\n"
            "  increase_threshold: 0.5\n"
            "  decrease_threshold: 0.6\n",
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError):
            Settings(project_root=yaml_root)

    def test_negative_max_adjustments_rejected(self, yaml_root):
        with pytest.raises(ValidationError):
            Settings(project_root=yaml_root, adaptive_max_adjustments=-1)

    def test_streak_auto_freeze_from_yaml(self, yaml_root):
        (yaml_root / "config" / "settings.yaml").write_text(
            "streak:\n  auto_freeze: false\n", encoding="utf-8"
        )
        assert Settings(project_root=yaml_root).streak_auto_freeze is False

    def test_flatten_drops_missing_values(self):
        flattened = flatten_settings({"streak": {"perfect_hours": 10}, "storage": {}})
        assert flattened == {"streak_perfect_hours": 10}

    def test_shipped_settings_file_matches_defaults(self):
        settings = Settings()
        assert settings.max_hearts == 5
        assert settings.adaptive_max_adjustments is None
        assert settings.levels[0].name == "Beginner"


class TestBuilders:
    def test_memory_backend(self, yaml_root):
        assert isinstance(build_store(Settings(project_root=yaml_root)), InMemoryStore)

    def test_json_backend(self, yaml_root):
        settings = Settings(project_root=yaml_root, storage_backend="json")
        store = build_store(settings)
        assert isinstance(store, JsonFileStore)
        assert store.directory == yaml_root / "data" / "progress"

    def test_build_repository(self, yaml_root):
        settings = Settings(
            project_root=yaml_root,
            daily_goal_xp=40,
            default_timezone="Asia/Tokyo",
            progress_update_attempts=5,
        )
        repo = build_repository(settings)
        assert repo.max_attempts == 5
        progress = repo.load("u1")
        assert progress.daily_goal_xp == 40
        assert progress.streak.timezone == "Asia/Tokyo"


class TestLogging:
    @pytest.mark.parametrize("production", [True, False])
    def test_configure_logging(self, production):
        configure_logging(production=production)
        structlog.get_logger().info("logging_configured", production=production)
        structlog.reset_defaults()

    def test_unknown_timezone_logged(self):
        with capture_logs() as logs:
            resolve_timezone("Nowhere/Special")
        assert logs[0]["event"] == "unknown_timezone"
        assert logs[0]["log_level"] == "warning"
        assert logs[0]["timezone"] == "Nowhere/Special"

    def test_difficulty_change_logged(self):
        from progression_engine.adaptive.difficulty import AdaptiveDifficultyEngine

        engine = AdaptiveDifficultyEngine()
        with capture_logs() as logs:
            for _ in range(5):
                engine.record_event(True)
        assert engine.current_difficulty == Difficulty.HARD
        assert [entry["event"] for entry in logs] == ["difficulty_adjusted"]
