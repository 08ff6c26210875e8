import os

import pytest

from py_kit.cli import main
from py_kit.repository import Repository


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PY_KIT_AUTHOR", raising=False)
    assert main(["init"]) == 0
    return tmp_path


def test_init_add_commit_log(workdir, capsys):
    (workdir / "hello.txt").write_text("hi\n")

    assert main(["add", "hello.txt"]) == 0
    assert main(["commit", "-m", "first commit", "--author", "Ada"]) == 0
    assert main(["log"]) == 0

    out = capsys.readouterr().out
    assert "Initialized empty py_kit repository" in out
    assert "add 'hello.txt'" in out
    assert "[main " in out
    assert "Author: Ada" in out
    assert "    first commit" in out


def test_status_output(workdir, capsys):
    (workdir / "a.txt").write_text("a")
    main(["add", "a.txt"])
    (workdir / "b.txt").write_text("b")
    capsys.readouterr()

    assert main(["status"]) == 0

    out = capsys.readouterr().out
    assert "On branch main" in out
    assert "new file: a.txt" in out
    assert "Untracked files:" in out
    assert "  b.txt" in out


def test_diff_output(workdir, capsys):
    (workdir / "a.txt").write_text("one\ntwo")
    main(["add", "a.txt"])
    main(["commit", "-m", "base"])
    (workdir / "a.txt").write_text("one\n2")
    capsys.readouterr()

    main(["diff"])

    assert capsys.readouterr().out.splitlines() == [
        "--- a/a.txt", "+++ b/a.txt", " one", "-two", "+2",
    ]


def test_branch_checkout_merge(workdir, capsys):
    (workdir / "a.txt").write_text("a")
    main(["add", "a.txt"])
    main(["commit", "-m", "base"])
    main(["checkout", "-b", "feature"])
    (workdir / "b.txt").write_text("b")
    main(["add", "b.txt"])
    main(["commit", "-m", "feature"])
    main(["checkout", "main"])
    capsys.readouterr()

    main(["branch"])
    assert capsys.readouterr().out.splitlines() == ["  feature", "* main"]

    assert main(["merge", "feature"]) == 0
    assert "Fast-forwarded to feature" in capsys.readouterr().out
    assert (workdir / "b.txt").read_text() == "b"


def test_merge_conflict_exit_code(workdir, capsys):
    (workdir / "a.txt").write_text("base")
    main(["add", "a.txt"])
    main(["commit", "-m", "base"])
    main(["checkout", "-b", "feature"])
    (workdir / "a.txt").write_text("theirs")
    main(["add", "a.txt"])
    main(["commit", "-m", "theirs"])
    main(["checkout", "main"])
    (workdir / "a.txt").write_text("ours!")
    main(["add", "a.txt"])
    main(["commit", "-m", "ours"])
    capsys.readouterr()

    assert main(["merge", "feature"]) == 1
    assert "CONFLICT (content): a.txt" in capsys.readouterr().out


def test_reset_tag_and_revert(workdir, capsys):
    (workdir / "a.txt").write_text("1")
    main(["add", "a.txt"])
    main(["commit", "-m", "one"])
    (workdir / "a.txt").write_text("22")
    main(["add", "a.txt"])
    main(["commit", "-m", "two"])

    assert main(["tag", "v2"]) == 0
    assert main(["revert", "HEAD"]) == 0
    assert (workdir / "a.txt").read_text() == "1"
    assert main(["reset", "--hard", "v2"]) == 0
    assert (workdir / "a.txt").read_text() == "22"

    capsys.readouterr()
    main(["tag"])
    assert capsys.readouterr().out.splitlines() == ["v2"]


def test_remote_add_and_list(workdir, capsys):
    assert main(["remote", "add", "origin", "http://kit.example/api/"]) == 0
    capsys.readouterr()

    main(["remote"])

    assert capsys.readouterr().out == "origin\thttp://kit.example/api\n"
    assert Repository.find().config.remote_url() == "http://kit.example/api"


def test_errors_are_reported(workdir, capsys):
    assert main(["commit", "-m", "empty"]) == 1
    assert "error: Nothing to commit" in capsys.readouterr().err

    assert main(["checkout", "nowhere"]) == 1
    assert "error: Unknown revision: nowhere" in capsys.readouterr().err


def test_outside_repository(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["status"]) == 1
    assert "Not a py_kit repository" in capsys.readouterr().err


def test_missing_required_argument(workdir):
    with pytest.raises(SystemExit):
        main(["commit"])
    with pytest.raises(SystemExit):
        main(["branch", "-d"])
    assert os.path.isdir(workdir / ".py_kit")


def test_show(workdir, capsys):
    (workdir / "a.txt").write_text("a")
    main(["add", "a.txt"])
    main(["commit", "-m", "base"])
    capsys.readouterr()

    assert main(["show"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("commit ")
    assert "    base" in out
    assert out.rstrip().endswith("  a.txt")


def test_stash_commands(workdir, capsys):
    (workdir / "a.txt").write_text("1")
    main(["add", "a.txt"])
    main(["commit", "-m", "base"])
    (workdir / "a.txt").write_text("22")
    capsys.readouterr()

    assert main(["stash", "-m", "half done"]) == 0
    assert (workdir / "a.txt").read_text() == "1"
    main(["stash", "list"])
    assert capsys.readouterr().out.splitlines() == [
        "Saved working directory: half done", "stash@{0}: half done",
    ]

    assert main(["stash", "pop"]) == 0
    assert (workdir / "a.txt").read_text() == "22"
    assert main(["stash", "drop"]) == 1
    assert "No stash entries found" in capsys.readouterr().err

    main(["add", "a.txt"])
    main(["commit", "-m", "second"])
    capsys.readouterr()
    main(["stash"])
    assert capsys.readouterr().out == "No local changes to save\n"


def test_config_commands(workdir, capsys):
    assert main(["config", "user.name", "Grace"]) == 0
    assert main(["config", "user.name"]) == 0
    assert main(["config", "user.email"]) == 0
    assert main(["config"]) == 0

    assert capsys.readouterr().out.splitlines() == ["Grace", "(not set)", "user.name=Grace"]
    assert main(["config", "name", "x"]) == 1
    assert "Invalid config key 'name'" in capsys.readouterr().err


def test_clone_into_non_empty_directory(workdir, capsys):
    assert main(["clone", "demo", "."]) == 1
    assert "already exists and is not empty" in capsys.readouterr().err
