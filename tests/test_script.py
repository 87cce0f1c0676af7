"""Tests for remote script composition and the playbook library."""

import pytest

from deployer.exceptions import PlaybookNotFound
from deployer.script import HEREDOC_DELIMITER, PlaybookLibrary, ScriptPayload


class TestScriptPayload:
    """Tests for ScriptPayload."""

    def test_render(self):
        """Test the command is a variable prefix and a quoted heredoc."""
        payload = ScriptPayload(
            body="echo body",
            helpers="helper() { :; }",
            variables={"DEPLOYER_SERVER_NAME": "web1", "DEPLOYER_MODE": "two words"},
        )

        assert payload.render() == (
            "DEPLOYER_SERVER_NAME=web1 DEPLOYER_MODE='two words' bash <<'DEPLOYER_SCRIPT_EOF'\n"
            "helper() { :; }\n"
            "\n"
            "echo body\n"
            "DEPLOYER_SCRIPT_EOF"
        )

    def test_render_without_variables(self):
        payload = ScriptPayload(body="true")
        assert payload.render().startswith("bash <<'DEPLOYER_SCRIPT_EOF'\n")

    def test_dollar_signs_untouched(self):
        """Test script text is shipped verbatim."""
        body = 'echo "$HOME" $(whoami) `id`'
        assert body in ScriptPayload(body=body).render()

    def test_delimiter_line_rejected(self):
        """Test a body that would end the heredoc early is rejected."""
        payload = ScriptPayload(body=f"echo hi\n{HEREDOC_DELIMITER}\nrm -rf /tmp/x")
        with pytest.raises(ValueError):
            payload.render()

    def test_delimiter_inside_line_allowed(self):
        payload = ScriptPayload(body=f"echo {HEREDOC_DELIMITER}")
        assert payload.render().endswith(f"echo {HEREDOC_DELIMITER}\n{HEREDOC_DELIMITER}")


class TestPlaybookLibrary:
    """Tests for PlaybookLibrary."""

    @pytest.fixture
    def library(self, tmp_path):
        (tmp_path / "helpers.sh").write_text("fail() { exit 1; }\n")
        (tmp_path / "hello.sh").write_text("echo hello\n")
        (tmp_path / "notes.txt").write_text("not a playbook\n")
        return PlaybookLibrary(tmp_path)

    def test_names_exclude_helpers(self, library):
        assert library.names() == ["hello"]

    def test_payload_prepends_helpers(self, library):
        """Test helpers come before the playbook body."""
        script = library.payload("hello", {}).compose()
        assert script.index("fail()") < script.index("echo hello")

    def test_missing_playbook(self, library):
        with pytest.raises(PlaybookNotFound, match="not found"):
            library.load("goodbye")

    @pytest.mark.parametrize("name", ["../etc/passwd", "Hello", "", "-x", "a b"])
    def test_invalid_names(self, library, name):
        """Test names that could escape the directory are rejected."""
        with pytest.raises(PlaybookNotFound, match="Invalid playbook name"):
            library.path_for(name)

    def test_missing_directory(self, tmp_path):
        assert PlaybookLibrary(tmp_path / "nope").names() == []

    def test_bundled_playbooks(self):
        """Test the bundled playbooks ship with the package."""
        library = PlaybookLibrary()
        assert library.names() == [
            "php-install",
            "server-firewall",
            "server-info",
            "site-cron-sync",
            "site-supervisor-sync",
        ]
        for name in library.names():
            assert "write_output" in library.load(name)

    def test_bundled_helpers(self):
        helpers = PlaybookLibrary().helpers()
        for function in ("fail()", "run_cmd()", "write_output()", "apt_get_with_retry()"):
            assert function in helpers
