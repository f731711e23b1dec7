"""
Test extension discovery and conversion.
"""

import json

import pytest

from mcp_merger.core.exceptions import MissingServerSpec
from mcp_merger.core.extensions import (
    CREDENTIALS_DIR_ENV, ExtensionConverter, ExtensionScanner
)
from mcp_merger.core.models import ExtensionManifest


def manifest(**overrides):
    data = {
        "name": "foo",
        "version": "1.0.0",
        "path": "/ext/foo",
        "server": {
            "type": "node",
            "entry_point": "server/index.js",
            "mcp_config": {
                "command": "node",
                "args": ["${__dirname}/server/index.js"],
                "env": {},
            },
        },
    }
    data.update(overrides)
    return ExtensionManifest.model_validate(data)


@pytest.fixture
def converter(isolated_environment):
    return ExtensionConverter(isolated_environment.shared_dir)


class TestExtensionConverter:
    """Test manifest to server entry conversion."""

    def test_dirname_substituted_in_args(self, converter):
        """The extension directory replaces the dirname placeholder."""
        result = converter.convert(manifest(server={
            "mcp_config": {"command": "sh", "args": ["${__dirname}/run.sh"], "env": {}}
        }))

        assert result.name == "foo"
        assert result.entry.command == "sh"
        assert result.entry.args == ["/ext/foo/run.sh"]

    def test_dirname_substituted_in_command(self, converter):
        """Commands shipped inside the extension resolve as well."""
        result = converter.convert(manifest(server={
            "mcp_config": {"command": "${__dirname}/bin/server", "args": []}
        }))

        assert result.entry.command == "/ext/foo/bin/server"

    def test_non_string_args_kept(self, converter):
        """Only string arguments are templated."""
        result = converter.convert(manifest(server={
            "mcp_config": {"command": "node", "args": ["--port", 8080]}
        }))

        assert result.entry.args == ["--port", 8080]

    def test_user_config_env_skipped(self, converter):
        """Env values referencing user_config are left out and reported."""
        result = converter.convert(manifest(
            server={"mcp_config": {
                "command": "node",
                "args": [],
                "env": {
                    "API_KEY": "${user_config.api_key}",
                    "MODE": "production",
                },
            }},
            user_config={"api_key": {"type": "string", "sensitive": True}},
        ))

        assert result.entry.env == {"MODE": "production"}
        assert result.user_config_fields == {"API_KEY": "api_key"}
        assert result.requires_user_config is True

    def test_multiple_user_config_refs(self, converter):
        """A value built from several fields reports all of them."""
        result = converter.convert(manifest(server={"mcp_config": {
            "command": "node",
            "env": {"DSN": "${user_config.user}:${user_config.password}@db"},
        }}))

        assert result.user_config_fields == {"DSN": ["user", "password"]}
        assert result.entry.env is None

    def test_non_string_env_values_serialized(self, converter):
        """Env values must be strings; other JSON values are encoded."""
        result = converter.convert(manifest(server={"mcp_config": {
            "command": "node",
            "env": {"PORT": 8080, "FLAGS": ["a", "b"]},
        }}))

        assert result.entry.env == {"PORT": "8080", "FLAGS": json.dumps(["a", "b"])}

    def test_empty_env_omitted(self, converter):
        """No env key is emitted when nothing remains."""
        result = converter.convert(manifest())

        assert result.entry.env is None
        assert "env" not in result.entry.to_config()
        assert result.requires_user_config is False

    def test_share_credentials(self, converter, isolated_environment):
        """Sharing credentials injects the credentials directory variable."""
        result = converter.convert(manifest(), share_credentials=True)

        expected = str(isolated_environment.shared_dir)
        assert result.entry.env == {CREDENTIALS_DIR_ENV: expected}
        assert result.credentials_dir == expected

    def test_missing_server_spec(self, converter):
        """Manifests without a runnable command cannot be converted."""
        with pytest.raises(MissingServerSpec):
            converter.convert(manifest(server=None))
        with pytest.raises(MissingServerSpec):
            converter.convert(manifest(server={"type": "python"}))
        with pytest.raises(MissingServerSpec):
            converter.convert(manifest(server={"mcp_config": {"args": ["x"]}}))

    def test_convert_all_skips_unconvertible(self, converter):
        """convert_all keys entries by name and skips manifests without a server."""
        manifests = [
            manifest(name="alpha"),
            manifest(name="no-server", server=None),
            manifest(name="beta", path="/ext/beta"),
        ]

        servers, converted = converter.convert_all(manifests)

        assert servers.wrapped is False
        assert servers.names() == ["alpha", "beta"]
        assert servers.servers["beta"].args == ["/ext/beta/server/index.js"]
        assert [c.name for c in converted] == ["alpha", "beta"]


class TestExtensionScanner:
    """Test reading manifests from the extensions directory."""

    def test_scan_sets_path(self, isolated_environment):
        """Each manifest records the directory it was found in."""
        ext_dir = isolated_environment.add_extension("ant.dir.foo", {
            "id": "ant.dir.foo",
            "name": "foo",
            "displayName": "Foo",
            "server": {"mcp_config": {"command": "node", "args": ["${__dirname}/index.js"]}},
        })

        manifests = ExtensionScanner(isolated_environment.extensions_dir).scan()

        assert len(manifests) == 1
        assert manifests[0].path == str(ext_dir)
        assert manifests[0].display_name == "Foo"

    def test_scan_sorted_and_skips_bad_manifests(self, isolated_environment):
        """Unreadable manifests are skipped; results follow directory order."""
        isolated_environment.add_extension("b-ext", {"name": "b"})
        isolated_environment.add_extension("a-ext", {"name": "a"})
        bad_dir = isolated_environment.extensions_dir / "c-bad"
        bad_dir.mkdir()
        (bad_dir / "manifest.json").write_text("{not json")
        (isolated_environment.extensions_dir / "d-empty").mkdir()
        isolated_environment.add_extension("e-noname", {"version": "1"})

        manifests = ExtensionScanner(isolated_environment.extensions_dir).scan()

        assert [m.name for m in manifests] == ["a", "b"]

    def test_scan_missing_directory(self, isolated_environment):
        """A missing extensions directory yields no manifests."""
        scanner = ExtensionScanner(isolated_environment.root / "nowhere")

        assert scanner.scan() == []
