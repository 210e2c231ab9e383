import sys

import pytest

from complogs.runner import cmd_info, configure_and_run, main

SCRIPT = "import sys; print('out-line'); sys.stdout.flush(); print('err-line', file=sys.stderr)"


def command(code=SCRIPT):
    return [sys.executable, "-c", code]


def test_requires_command():
    with pytest.raises(ValueError, match="not enough arguments to run"):
        configure_and_run(args=[])


def test_log_file_gets_stdout_and_stderr(tmp_path):
    log = tmp_path / "out.log"
    configure_and_run(str(log), False, True, command())
    content = log.read_text()
    assert "out-line" in content
    assert "err-line" in content


def test_stderr_not_redirected(tmp_path, capfd):
    log = tmp_path / "out.log"
    configure_and_run(str(log), False, False, command())
    content = log.read_text()
    assert "out-line" in content
    assert "err-line" not in content
    assert "err-line" in capfd.readouterr().err


def test_log_file_is_appended(tmp_path):
    log = tmp_path / "out.log"
    configure_and_run(str(log), False, True, command("print('out-line')"))
    configure_and_run(str(log), False, True, command("print('out-line')"))
    assert log.read_text().count("out-line") == 2


def test_also_stdout(tmp_path, capsys):
    log = tmp_path / "out.log"
    configure_and_run(str(log), True, True, command("print('out-line')"))
    assert "out-line" in log.read_text()
    assert "out-line" in capsys.readouterr().out


def test_failing_command_raises(tmp_path):
    with pytest.raises(RuntimeError, match="running command: exit status 3"):
        configure_and_run(str(tmp_path / "x.log"), False, True, command("raise SystemExit(3)"))


def test_missing_executable(tmp_path):
    with pytest.raises(RuntimeError, match="starting command"):
        configure_and_run(None, False, True, [str(tmp_path / "missing-program")])


def test_log_file_cannot_be_created(tmp_path):
    target = tmp_path / "missing-dir" / "out.log"
    with pytest.raises(RuntimeError, match="failed to create log file"):
        configure_and_run(str(target), False, True, command())


def test_cmd_info_layout():
    info = cmd_info("f.log", False, True, "", "/bin/prog", ["prog", "a", "b"])
    assert info.splitlines() == [
        "Command env: (log-file=f.log, also-stdout=false, redirect-stderr=true)",
        "Run from directory: ",
        "Executable path: /bin/prog",
        "Args (comma-delimited): prog,a,b",
    ]


def test_main_runs_command(tmp_path):
    log = tmp_path / "main.log"
    assert main(["-log-file", str(log)] + command("print('out-line')")) == 0
    assert "out-line" in log.read_text()


def test_main_redirect_stderr_flag(tmp_path):
    log = tmp_path / "main.log"
    assert main([f"--log-file={log}", "-redirect-stderr=false"] + command()) == 0
    assert "err-line" not in log.read_text()


def test_main_errors():
    assert main([]) == 1
    assert main(["-no-such-flag"]) == 2
    assert main(command("raise SystemExit(2)")) == 1