"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from clanquest.config import ClanQuestConfig, load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:

    def test_defaults_for_optional_keys(self, tmp_path):
        cfg = load_config(_write(tmp_path, "app_name: CQ\nfrontend_url: https://cq.test/\n"))
        assert cfg.app_name == "CQ"
        assert cfg.frontend_url == "https://cq.test"
        assert cfg.clan_switch_cooldown_days == 30
        assert cfg.referral_reward_points == 100
        assert cfg.referral_code_length == 10
        assert cfg.token_ttl_days == 30

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(
            tmp_path,
            "app_name: CQ\n"
            "frontend_url: https://cq.test\n"
            "clan_switch_cooldown_days: 14\n"
            "referral_reward_points: 250\n"
            "referral_code_length: 12\n"
            "token_ttl_days: 7\n",
        ))
        assert cfg.clan_switch_cooldown_days == 14
        assert cfg.referral_reward_points == 250
        assert cfg.referral_code_length == 12
        assert cfg.token_ttl_days == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "app_name: CQ\n"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, ""))

    def test_config_is_frozen(self, tmp_path):
        cfg = load_config(_write(tmp_path, "app_name: CQ\nfrontend_url: https://cq.test\n"))
        assert isinstance(cfg, ClanQuestConfig)
        with pytest.raises(AttributeError):
            cfg.app_name = "other"
