"""
Tests for configuration loading — YAML file, environment overrides, validation.
"""

import textwrap
from pathlib import Path

import pytest

from siliconcraft.core.config.loader import ConfigError, find_config_file, load_config
from siliconcraft.core.models.settings import DEFAULT_IMAGE, image_is_pinned


class TestImagePinning:
    @pytest.mark.parametrize("ref", [
        DEFAULT_IMAGE,
        "efabless/openlane:2023.11.03",
        "registry.local:5000/openlane:v1",
        "ghcr.io/x/openlane@sha256:" + "a" * 64,
    ])
    def test_pinned(self, ref: str):
        assert image_is_pinned(ref)

    @pytest.mark.parametrize("ref", [
        "efabless/openlane",
        "efabless/openlane:latest",
        "registry.local:5000/openlane",
        "",
    ])
    def test_unpinned(self, ref: str):
        assert not image_is_pinned(ref)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path):
        config = load_config(workspace_root=tmp_path, env={})
        assert config.workspace_root == tmp_path
        assert config.container_image == DEFAULT_IMAGE
        assert config.pdk == "sky130A"
        assert config.fetch_policy.max_attempts == 3

    def test_reads_workspace_file(self, tmp_path: Path):
        (tmp_path / "siliconcraft.yml").write_text(textwrap.dedent("""\
            pdk: sky130B
            sample_design: inverter
            fetch_policy:
              max_attempts: 5
              backoff: exponential
              delay: 2
        """))
        config = load_config(workspace_root=tmp_path, env={})
        assert config.pdk == "sky130B"
        assert config.fetch_policy.max_attempts == 5
        assert config.fetch_policy.backoff == "exponential"

    def test_provision_wrapper_key(self, tmp_path: Path):
        path = tmp_path / "custom.yml"
        path.write_text("provision:\n  runtime_repo_dir: OL\n")
        config = load_config(path, workspace_root=tmp_path, env={})
        assert config.runtime_repo_dir == "OL"

    def test_env_workspace_root(self, tmp_path: Path):
        config = load_config(env={"WORKSPACE_ROOT": str(tmp_path / "ws")})
        assert config.workspace_root == tmp_path / "ws"

    def test_flag_beats_env(self, tmp_path: Path):
        config = load_config(
            workspace_root=tmp_path / "flag",
            env={"WORKSPACE_ROOT": str(tmp_path / "env")},
        )
        assert config.workspace_root == tmp_path / "flag"

    def test_env_image_beats_file(self, tmp_path: Path):
        (tmp_path / "siliconcraft.yml").write_text("container_image: a/b:1\n")
        config = load_config(workspace_root=tmp_path, env={"CONTAINER_IMAGE": "a/b:2"})
        assert config.container_image == "a/b:2"

    def test_unpinned_image_is_config_error(self, tmp_path: Path):
        with pytest.raises(ConfigError) as exc:
            load_config(workspace_root=tmp_path, env={"CONTAINER_IMAGE": "efabless/openlane:latest"})
        assert exc.value.exit_code == 7
        assert "not pinned" in str(exc.value)

    def test_invalid_yaml(self, tmp_path: Path):
        (tmp_path / "siliconcraft.yml").write_text("pdk: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(workspace_root=tmp_path, env={})

    def test_non_mapping_yaml(self, tmp_path: Path):
        (tmp_path / "siliconcraft.yml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(workspace_root=tmp_path, env={})

    def test_bad_value(self, tmp_path: Path):
        (tmp_path / "siliconcraft.yml").write_text("fetch_policy:\n  max_attempts: 0\n")
        with pytest.raises(ConfigError):
            load_config(workspace_root=tmp_path, env={})

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml", workspace_root=tmp_path, env={})

    def test_find_config_file(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None
        (tmp_path / "siliconcraft.yml").write_text("{}")
        assert find_config_file(tmp_path) == tmp_path / "siliconcraft.yml"
