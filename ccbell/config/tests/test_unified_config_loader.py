"""
Tests for UnifiedConfigLoader / parse_config
"""

from datetime import time as dtime

import pytest
import yaml

from ccbell.config import ConfigError, UnifiedConfigLoader, parse_config
from ccbell.modules.sound_resolution import SelectionMode
from ccbell.modules.transition_detection import CategoricalWatch, NumericThresholds, TransitionTier


MINIMAL = {
    "cooldowns": {"warning": 120, "critical": 30},
    "sounds": {"ping": "/s/ping.wav"},
    "pools": {
        "soft": {
            "mode": "weighted",
            "remember_last": True,
            "entries": ["sound:ping", {"sound": "file:/s/b.wav", "weight": 3, "window": "22:00-06:30"}],
        }
    },
    "chains": {
        "alarm": {"repeat_count": 2, "steps": [{"sound": "sound:ping", "required": True, "delay_before_ms": 50}]}
    },
    "monitors": [
        {"key": "disk:*", "warning": 80, "critical": 95, "hysteresis_margin": 5,
         "sounds": {"warning": "sound:ping", "critical": "chain:alarm"}},
        {"key": "svc:*:state", "watch": ["failed"], "sounds": {"categorical-change": "pool:soft"}},
    ],
}


class TestParseConfig:
    """Тесты разбора конфигурации"""

    def test_full_document(self):
        config = parse_config(MINIMAL)

        assert config.cooldown_for(TransitionTier.WARNING) == 120
        assert config.cooldown_for(TransitionTier.LEAK) == 0.0

        pool = config.pools["soft"]
        assert pool.mode == SelectionMode.WEIGHTED
        assert pool.remember_last is True
        assert pool.entries[1].weight == 3
        assert pool.entries[1].time_window.start == dtime(22, 0)
        assert pool.entries[1].time_window.end == dtime(6, 30)

        chain = config.chains["alarm"]
        assert chain.repeat_count == 2
        assert chain.steps[0].required is True
        assert chain.steps[0].delay_before_ms == 50

    def test_monitor_lookup_by_glob(self):
        config = parse_config(MINIMAL)

        disk = config.monitor_for("disk:/home")
        assert disk.threshold == NumericThresholds(warning=80, critical=95, hysteresis_margin=5)
        assert disk.sounds[TransitionTier.CRITICAL] == "chain:alarm"
        assert config.threshold_for("svc:nginx:state") == CategoricalWatch(frozenset({"failed"}))
        assert config.monitor_for("battery:0") is None

    def test_disabled_monitor_is_skipped(self):
        data = {"monitors": [{"key": "x", "warning": 1, "enabled": False}]}
        assert parse_config(data).monitor_for("x") is None

    def test_empty_document_gives_defaults(self):
        config = parse_config(None)
        assert config.playback.max_queue == 32
        assert config.monitors == []

    @pytest.mark.parametrize("data,fragment", [
        ({"cooldowns": {"severe": 1}}, "unknown tier"),
        ({"pools": {"p": {"entries": []}}}, "pools.p"),
        ({"pools": {"p": {"mode": "random", "entries": ["a"]}}}, "selection mode"),
        ({"pools": {"p": {"entries": [{"sound": "a", "window": "late"}]}}}, "window"),
        ({"chains": {"c": {"steps": []}}}, "chains.c"),
        ({"chains": {"c": {"steps": [{"sound": "a", "delay_before_ms": -5}]}}}, "negative"),
        ({"monitors": [{"warning": 1}]}, "missing 'key'"),
        ({"monitors": [{"key": "k", "warning": 90, "critical": 80}]}, "invalid thresholds"),
        ({"monitors": "disk"}, "'monitors' must be a list"),
    ])
    def test_invalid_documents(self, data, fragment):
        with pytest.raises(ConfigError, match=fragment):
            parse_config(data)


class TestUnifiedConfigLoader:
    """Тесты загрузчика"""

    def test_loads_yaml_file(self, tmp_path):
        path = tmp_path / "ccbell.yaml"
        path.write_text(yaml.safe_dump(MINIMAL), encoding="utf-8")

        config = UnifiedConfigLoader(path).load()

        assert "alarm" in config.chains

    def test_bundled_default_config_is_valid(self):
        config = UnifiedConfigLoader().load()
        assert config.monitor_for("disk:/:usage") is not None
        assert "siren" in config.chains

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            UnifiedConfigLoader(tmp_path / "nope.yaml").load()

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("monitors: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="invalid YAML"):
            UnifiedConfigLoader(path).load()
