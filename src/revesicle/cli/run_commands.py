import os
import logging
import subprocess
from pathlib import Path


def run_command(command, cwd=None, log_file=None):
    """
    Runs an external command with logging, error handling,
    and reporting of new files/folders.

    Parameters
    ----------
    command : list[str] or str
        Command to execute. Prefer a list of args (no shell).
    cwd : str or Path, optional
        Working directory in which to execute the command.
    log_file : str or Path, optional
        When given, the combined stdout/stderr stream is written to this
        file (relative paths resolve against ``cwd``) instead of the log.

    Returns
    -------
    str
        Combined stdout and stderr output (empty when ``log_file`` is used).

    Raises
    ------
    subprocess.CalledProcessError
        If the command exits with a non-zero status.
    """
    if isinstance(command, list):
        log_cmd = " ".join(str(c) for c in command)
        shell = False
    elif isinstance(command, str):
        log_cmd = command
        shell = True
    else:
        raise TypeError("command must be str or list, not %r" % type(command))

    workdir = Path(cwd) if cwd else Path(".")
    logging.info(f"Executing command: {log_cmd}" + (f" (output -> {log_file})" if log_file else ""))
    before_items = set(os.listdir(workdir))

    output_lines: list[str] = []
    sink = None
    if log_file is not None:
        target = Path(log_file)
        if not target.is_absolute():
            target = workdir / target
        sink = target.open("w", encoding="utf-8")
    try:
        process = subprocess.Popen(
            command,
            shell=shell,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            cwd=cwd,
        )
        for line in iter(process.stdout.readline, ""):
            if sink is not None:
                sink.write(line)
            else:
                logging.info(line.rstrip())
                output_lines.append(line)
        process.stdout.close()
        return_code = process.wait()
    finally:
        if sink is not None:
            sink.close()

    if return_code != 0:
        tail = "".join(output_lines[-20:]).strip()
        logging.error(
            f"Command exited with code {return_code}: {log_cmd}"
            + (f" | output: {tail}" if tail else "")
            + (f" | see {log_file}" if log_file else "")
        )
        raise subprocess.CalledProcessError(return_code, log_cmd)

    new_items = set(os.listdir(workdir)) - before_items
    if new_items:
        logging.info(f"New files/folders created: {', '.join(sorted(new_items))}")
    else:
        logging.info("No new files/folders created.")
    return "".join(output_lines)
