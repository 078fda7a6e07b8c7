import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

import update_packages as up


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(up.UpdaterSettings.ENV_VAR, raising=False)


def test_parse_defaults():
    args = up.parse_arguments([])
    assert not args.dry_run
    assert not args.quiet
    assert not args.no_color
    assert args.only is None


def test_parse_all_flags():
    args = up.parse_arguments(["--dry-run", "--only=uv", "--no-color", "--quiet"])
    assert args.dry_run
    assert args.only == "uv"
    assert args.no_color
    assert args.quiet


def test_help_exits_zero(capsys):
    with pytest.raises(SystemExit) as exc:
        up.parse_arguments(["-h"])
    assert exc.value.code == 0
    assert "--only" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [["--bogus"], ["--only=npm"], ["--dry"], ["extra"]])
def test_bad_arguments_exit_two(capsys, argv):
    with pytest.raises(SystemExit) as exc:
        up.main(argv)
    assert exc.value.code == 2
    captured = capsys.readouterr()
    assert "usage:" in captured.err
    assert "error:" in captured.err
    assert captured.out == ""


def test_nothing_installed(processes, installed, capsys):
    assert up.main(["--no-color"]) == 0

    output = capsys.readouterr().out
    assert "Homebrew not found. Skipping." in output
    assert "uv not found. Skipping." in output
    assert "pip not found. Skipping." in output
    assert "- Homebrew (N/A): 0 formulas, 0 casks" in output
    assert "- uv (N/A): 0 tools" in output
    assert "- pip (N/A): 0 packages" in output
    assert "Failed with exit code" not in output
    assert processes.calls == []


def test_only_pip_with_three_outdated(processes, installed, capsys):
    installed.add("pip")
    processes.script(
        "pip", "list", "--outdated", "--format=json",
        stdout=json.dumps([{"name": "click"}, {"name": "rich"}, {"name": "httpx"}]),
    )
    processes.script("pip", "--version", stdout="pip 24.2 from /x (python 3.12)")

    assert up.main([]) == 0

    assert processes.invocations("pip", "install") == [
        ("pip", "install", "-U", "click"),
        ("pip", "install", "-U", "rich"),
        ("pip", "install", "-U", "httpx"),
    ]
    output = capsys.readouterr().out
    first = output.index("click (1/3)")
    second = output.index("rich (2/3)")
    third = output.index("httpx (3/3)")
    assert first < second < third < output.index("pip packages updated (3 upgraded)")
    assert "- pip (v24.2): 0 packages" in output


def test_dry_run_everything(processes, installed, capsys):
    installed.update({"brew", "uv", "pip"})

    assert up.main(["--dry-run"]) == 0

    assert processes.calls == []
    output = capsys.readouterr().out
    assert "› brew update: (dry-run)" in output
    assert "› uv self update: (dry-run)" in output
    assert "› upgrade pip itself: (dry-run)" in output
    final = output.strip().splitlines()[-1]
    assert final.startswith("✅ 🎉 All requested updates completed in")
    assert final.endswith("(dry-run)")


def test_failure_sets_exit_code_and_continues(processes, installed, capsys):
    installed.update({"brew", "pip"})
    processes.script("brew", "cleanup", returncode=4)

    assert up.main(["--no-color"]) == 4

    output = capsys.readouterr().out
    assert "brew cleanup (exit 4)" in output
    assert "Checking for outdated pip packages..." in output
    assert output.strip().splitlines()[-1] == "❌ Failed with exit code 4"


def scripted_run(processes, installed, capsys, argv):
    installed.update({"brew", "uv", "pip"})
    processes.script("brew", "outdated", "--json=v2", stdout=json.dumps({"formulae": [{"name": "git"}], "casks": []}))
    processes.script("brew", "doctor", returncode=1)
    processes.script("uv", "tool", "list", stdout="ruff v0.5.0\n- ruff\n")
    processes.script("pip", "list", "--outdated", "--format=json", stdout=json.dumps([{"name": "rich"}]))
    processes.script("pip", "install", "-U", "rich", returncode=1)
    up.main(argv)
    return capsys.readouterr().out.splitlines()


def test_quiet_only_drops_informational_lines(processes, installed, capsys):
    loud = scripted_run(processes, installed, capsys, ["--no-color"])
    quiet = scripted_run(processes, installed, capsys, ["--no-color", "--quiet"])

    assert len(quiet) <= len(loud)
    assert all(line in loud for line in quiet)
    kept = [line for line in loud if line.startswith(("✅", "⚠️", "❌", "- "))]
    assert kept
    assert all(line in quiet for line in kept)
    assert not any(line.startswith(("ℹ️", "✓", "🔄")) for line in quiet)


def test_config_problem_is_reported(processes, installed, capsys, tmp_path):
    assert up.main(["--config", str(tmp_path / "missing.json")]) == 0
    assert "Config file not found" in capsys.readouterr().out


def test_interrupt_exits_130(processes, installed, capsys, monkeypatch):
    def interrupt(self):
        raise KeyboardInterrupt

    monkeypatch.setattr(up.SectionOrchestrator, "run_all", interrupt)

    assert up.main([]) == 130
    output = capsys.readouterr().out
    assert "Interrupted" in output
    assert "Failed with exit code 130" in output


def test_nothing_is_logged_to_stderr_by_default(tmp_path):
    # Fresh interpreter: no pytest logging handlers on the root logger
    repo_root = Path(__file__).resolve().parents[1]
    env = dict(os.environ, HOME=str(tmp_path), PYTHONPATH=str(repo_root), PATH="")
    env.pop(up.UpdaterSettings.ENV_VAR, None)
    script = "import sys, update_packages; sys.exit(update_packages.main(sys.argv[1:]))"

    result = subprocess.run(
        [sys.executable, "-c", script, "--no-color", "--dry-run", "--config", str(tmp_path / "missing.json")],
        capture_output=True,
        text=True,
        encoding="utf-8",
        cwd=tmp_path,
        env=env,
        check=False,
    )

    assert result.returncode == 0
    assert result.stderr == ""
    assert result.stdout.count("Config file not found") == 1
