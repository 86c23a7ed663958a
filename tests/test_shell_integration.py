"""Tests for the rc file installer."""

import os

import pytest

from baishify.shell_integration import (
    BEGIN_MARKER,
    END_MARKER,
    InstallError,
    InstallOutcome,
    ShellKind,
    default_rc_path,
    detect_shell_from_env,
    find_block,
    install,
    parse_shell_name,
    upsert_block,
)

USER_CONTENT = "export PATH=\"$HOME/bin:$PATH\"\nalias ll='ls -la'\n"


@pytest.mark.parametrize("kind", list(ShellKind))
def test_install_twice_equals_install_once(tmp_path, kind):
    rc = tmp_path / kind.rc_filename
    rc.write_text(USER_CONTENT)

    assert install(kind, rc) is InstallOutcome.INSTALLED
    once = rc.read_bytes()
    assert install(kind, rc) is InstallOutcome.ALREADY_INSTALLED
    assert rc.read_bytes() == once
    assert once.count(BEGIN_MARKER.encode()) == 1


def test_install_preserves_content_byte_for_byte(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text(USER_CONTENT)

    install(ShellKind.BASH, rc)

    content = rc.read_text()
    assert content.startswith(USER_CONTENT)
    assert content[len(USER_CONTENT):] == ShellKind.BASH.wrapper_block()


def test_install_creates_missing_file(tmp_path):
    rc = tmp_path / ".zshrc"
    assert install(ShellKind.ZSH, rc) is InstallOutcome.INSTALLED
    assert rc.read_text() == ShellKind.ZSH.wrapper_block()


def test_install_adds_newline_when_file_lacks_one(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text("alias gs='git status'")

    install(ShellKind.BASH, rc)

    assert rc.read_text() == "alias gs='git status'\n" + ShellKind.BASH.wrapper_block()


def test_changed_block_is_updated_in_place(tmp_path):
    rc = tmp_path / ".bashrc"
    before = "# top\n"
    after = "# bottom\nexport EDITOR=vim\n"
    old_block = f"{BEGIN_MARKER}\nb() {{ command b \"$@\"; }}\n{END_MARKER}\n"
    rc.write_text(before + old_block + after)

    assert install(ShellKind.BASH, rc) is InstallOutcome.UPDATED

    assert rc.read_text() == before + ShellKind.BASH.wrapper_block() + after


def test_install_keeps_file_mode(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text(USER_CONTENT)
    os.chmod(rc, 0o600)

    install(ShellKind.BASH, rc)

    assert os.stat(rc).st_mode & 0o777 == 0o600


def test_install_writes_through_symlink(tmp_path):
    real = tmp_path / "dotfiles" / "bashrc"
    real.parent.mkdir()
    real.write_text(USER_CONTENT)
    link = tmp_path / ".bashrc"
    link.symlink_to(real)

    install(ShellKind.BASH, link)

    assert link.is_symlink()
    assert BEGIN_MARKER in real.read_text()


def test_missing_parent_directory_raises_install_error(tmp_path):
    rc = tmp_path / "does" / "not" / "exist" / ".bashrc"
    with pytest.raises(InstallError) as excinfo:
        install(ShellKind.BASH, rc)
    assert excinfo.value.path == rc
    assert not rc.parent.exists()


def test_unreadable_rc_raises_install_error(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_bytes(b"\xff\xfe\x00not utf-8\xff")
    with pytest.raises(InstallError):
        install(ShellKind.BASH, rc)
    assert rc.read_bytes() == b"\xff\xfe\x00not utf-8\xff"


def test_orphan_begin_marker_is_not_a_block():
    content = f"{BEGIN_MARKER}\nstray\n"
    assert find_block(content) is None
    new_content, outcome = upsert_block(content, "BLOCK\n")
    assert outcome is InstallOutcome.INSTALLED
    assert new_content == content + "BLOCK\n"


def test_markers_must_start_a_line():
    content = f"echo '{BEGIN_MARKER}'\necho '{END_MARKER}'\n"
    assert find_block(content) is None


def test_find_block_spans_through_end_line_break():
    block = f"{BEGIN_MARKER}\nbody\n{END_MARKER}\n"
    content = "a\n" + block + "z\n"
    start, stop = find_block(content)
    assert content[start:stop] == block


def test_wrapper_blocks_record_history():
    assert 'history -s "$cmd"' in ShellKind.BASH.wrapper_block()
    assert 'print -s -- "$cmd"' in ShellKind.ZSH.wrapper_block()
    for kind in ShellKind:
        block = kind.wrapper_block()
        assert block.startswith(BEGIN_MARKER + "\n")
        assert block.endswith(END_MARKER + "\n")
        assert "--output-file" in block


def test_shell_detection():
    assert detect_shell_from_env({"SHELL": "/bin/zsh"}) is ShellKind.ZSH
    assert detect_shell_from_env({"SHELL": "/usr/local/bin/bash"}) is ShellKind.BASH
    assert detect_shell_from_env({"SHELL": "/usr/bin/fish"}) is None
    assert detect_shell_from_env({}) is None
    assert parse_shell_name(" ZSH ") is ShellKind.ZSH


def test_default_rc_path(tmp_path):
    assert default_rc_path(ShellKind.BASH, tmp_path) == tmp_path / ".bashrc"
    assert default_rc_path(ShellKind.ZSH, tmp_path) == tmp_path / ".zshrc"


def test_failed_replace_leaves_rc_untouched(tmp_path, monkeypatch):
    rc = tmp_path / ".bashrc"
    rc.write_text(USER_CONTENT)
    original = rc.read_bytes()

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(InstallError) as excinfo:
        install(ShellKind.BASH, rc)

    assert excinfo.value.path == rc
    assert rc.read_bytes() == original
    assert list(tmp_path.glob(".bashrc.*.tmp")) == []
