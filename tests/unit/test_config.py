"""Unit tests for configuration loading and DMRConfig."""

import json

import pytest

from dmrcombp.config import load_config
from dmrcombp.dmr.base import DMRConfig
from dmrcombp.errors import ConfigurationError


@pytest.mark.unit
class TestLoadConfig:
    def test_packaged_defaults(self):
        cfg = load_config()
        assert cfg["dist_cutoff"] == 1000
        assert cfg["bin_size"] == 310
        assert cfg["seed"] == 0.01
        assert cfg["min_cpg"] == 2
        assert cfg["truncate_acf"] is True

    def test_user_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "user.json"
        path.write_text(json.dumps({"seed": 0.05, "extra_key": "x"}))
        cfg = load_config(str(path))
        assert cfg["seed"] == 0.05
        assert cfg["bin_size"] == 310
        assert cfg["extra_key"] == "x"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Error parsing JSON"):
            load_config(str(path))

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            load_config(str(path))


@pytest.mark.unit
class TestDMRConfig:
    def test_defaults_match_packaged_config(self):
        packaged = DMRConfig.from_dict(load_config())
        assert packaged == DMRConfig()

    def test_from_dict_ignores_unknown_keys(self):
        cfg = DMRConfig.from_dict({"seed": 0.2, "unrelated": 1})
        assert cfg.seed == 0.2

    @pytest.mark.parametrize(
        "field,value",
        [
            ("dist_cutoff", 0),
            ("bin_size", -5),
            ("seed", 0.0),
            ("seed", 1.5),
            ("min_cpg", 0),
            ("acf_alpha", 1.0),
            ("correction_method", "holm"),
        ],
    )
    def test_validate_rejects(self, field, value):
        cfg = DMRConfig(**{field: value})
        with pytest.raises(ConfigurationError) as excinfo:
            cfg.validate()
        assert excinfo.value.parameter == field

    def test_validate_accepts_defaults(self):
        DMRConfig().validate()
