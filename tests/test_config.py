import pytest

from photoclone import config
from photoclone.exceptions import ConfigError
from photoclone.models.policy import (
    FORMAT_HEIC,
    FORMAT_JPEG,
    FORMAT_PRESERVE,
    RESIZE_MEGAPIXELS,
    RESIZE_PERCENTAGE,
    RESIZE_PRESERVE,
)


def test_parse_resize_shapes():
    assert config.parse_resize("50%").kind == RESIZE_PERCENTAGE
    assert config.parse_resize("50%").value == 50
    assert config.parse_resize("36m").kind == RESIZE_MEGAPIXELS
    assert config.parse_resize("36M").value == 36
    assert config.parse_resize("preserve").kind == RESIZE_PRESERVE
    assert config.parse_resize(None).kind == RESIZE_PRESERVE


@pytest.mark.parametrize("value", ["150%", "0%", "0m", "big", "36mp", "-5%"])
def test_parse_resize_rejects_malformed(value):
    with pytest.raises(ConfigError):
        config.parse_resize(value)


def test_parse_quality():
    assert config.parse_quality("92%").percentage == 92
    assert config.parse_quality("preserve").percentage is None
    with pytest.raises(ConfigError):
        config.parse_quality("92")


def test_parse_format_aliases():
    assert config.parse_format("jpg") == FORMAT_JPEG
    assert config.parse_format("JPEG") == FORMAT_JPEG
    assert config.parse_format("heif") == FORMAT_HEIC
    assert config.parse_format("preserve") == FORMAT_PRESERVE
    with pytest.raises(ConfigError):
        config.parse_format("webp")


def test_policy_table_later_entries_override():
    table = config.parse_policy_table(
        [
            {"rate": [1, 2], "command": {"format": "heic"}},
            {"rate": [2], "command": {"format": "jpg", "quality": "80%"}},
            {"rate": [5]},
        ]
    )
    assert table[1].format == FORMAT_HEIC
    assert table[2].format == FORMAT_JPEG
    assert table[2].quality.percentage == 80
    assert table[5].is_bypass


def test_policy_table_rejects_bad_rates():
    with pytest.raises(ConfigError):
        config.parse_policy_table([{"rate": "3", "command": {}}])
    with pytest.raises(ConfigError):
        config.parse_policy_table([{"rate": [True], "command": {}}])
    with pytest.raises(ConfigError):
        config.parse_policy_table([{"rate": [1], "command": {"sharpen": "yes"}}])


def test_init_writes_default_and_refuses_overwrite(tmp_path):
    target = tmp_path / "conf" / "config.toml"
    path = config.init_config(str(target))
    assert target.exists()
    assert path == str(target)

    with pytest.raises(ConfigError):
        config.init_config(str(target))
    target.write_text("# edited")
    config.init_config(str(target), force=True)
    assert "[[policies]]" in target.read_text()


def test_default_config_round_trip(tmp_path):
    target = tmp_path / "config.toml"
    config.init_config(str(target))
    cfg = config.load_config(str(target))

    assert cfg.geotag.match_within == 300
    assert cfg.workers == 1
    assert cfg.policies[4].format == FORMAT_HEIC
    assert cfg.policies[3].resize.kind == RESIZE_MEGAPIXELS
    assert cfg.policies[3].resize.value == 50
    assert cfg.policies[0].quality.percentage == 92
    assert cfg.policies[2].resize.value == 36
    assert 5 not in cfg.policies


def test_load_config_env_location(tmp_path, monkeypatch):
    target = tmp_path / "from_env.toml"
    target.write_text('[import]\nfrom = "/a"\nto = "/b"\n[clone]\nworkers = 4\n')
    monkeypatch.setenv(config.CONFIG_ENV, str(target))

    cfg = config.load_config()
    assert cfg.source == "/a"
    assert cfg.destination == "/b"
    assert cfg.workers == 4
    assert cfg.policies == {}


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        config.load_config(str(tmp_path / "missing.toml"))

    broken = tmp_path / "broken.toml"
    broken.write_text("[import\nfrom = ")
    with pytest.raises(ConfigError):
        config.load_config(str(broken))

    bad_value = tmp_path / "bad.toml"
    bad_value.write_text("[geotag]\nmatch_within = 0\n")
    with pytest.raises(ConfigError):
        config.load_config(str(bad_value))
