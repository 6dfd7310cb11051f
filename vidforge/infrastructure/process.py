import logging
import queue
import subprocess
import threading
import time
from collections import deque
from typing import Callable, IO, List, Optional, Sequence
from pydantic import BaseModel, Field
from vidforge.domain.errors import Cancelled, TimeoutExceeded, ToolUnavailable

class ProcessResult(BaseModel):
    returncode: int
    stdout: str = ""
    stderr_tail: List[str] = Field(default_factory=list)

class ManagedProcess:
    """Owned child process with a single wait-with-deadline primitive.

    stderr is drained line by line on a reader thread (universal newlines, so
    ffmpeg's carriage-return status lines arrive one by one). The calling
    thread polls that queue, forwarding lines to ``on_line`` and checking the
    deadline and the cancel event between polls. On expiry or cancellation the
    child is killed and reaped before TimeoutExceeded/Cancelled is raised.
    """

    def __init__(
        self,
        cmd: Sequence[str],
        stage: str,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
        on_line: Optional[Callable[[str], None]] = None,
        capture_stdout: bool = False,
        tail_lines: int = 20,
        kill_grace: float = 5.0,
        poll_interval: float = 0.1,
    ):
        self.cmd = [str(c) for c in cmd]
        self.stage = str(getattr(stage, "value", stage))
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.on_line = on_line
        self.capture_stdout = capture_stdout
        self.kill_grace = kill_grace
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(__name__)

        self._process: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._stdout_chunks: List[str] = []
        self._readers: List[threading.Thread] = []
        self._tail = deque(maxlen=tail_lines)

    @property
    def process(self) -> Optional[subprocess.Popen]:
        return self._process

    def start(self):
        """Spawns the child and its reader threads."""
        try:
            self._process = subprocess.Popen(
                self.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if self.capture_stdout else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ToolUnavailable(self.cmd[0], f"not executable ({e})") from e

        self._spawn_reader(self._read_lines, self._process.stderr)
        if self.capture_stdout:
            self._spawn_reader(self._read_all, self._process.stdout)

    def run(self) -> ProcessResult:
        """Runs the child to completion, timeout or cancellation."""
        self.start()
        try:
            self._wait_with_deadline()
        except BaseException:
            self.kill()
            raise
        self._join_readers()

        return ProcessResult(
            returncode=self._process.returncode,
            stdout="".join(self._stdout_chunks),
            stderr_tail=list(self._tail),
        )

    def kill(self):
        """Forcibly terminates the child and waits for it to be reaped."""
        if self._process is None:
            return
        if self._process.poll() is None:
            try:
                self._process.kill()
            except OSError:
                pass  # exited between poll() and kill()
            try:
                self._process.wait(timeout=self.kill_grace)
            except subprocess.TimeoutExpired:
                self.logger.warning(f"PROCESS_KILL: {self.cmd[0]} pid={self._process.pid} did not exit after kill")
        self._join_readers()

    def _wait_with_deadline(self):
        deadline = time.monotonic() + self.timeout
        eof = False
        while True:
            if not eof:
                try:
                    line = self._lines.get(timeout=self.poll_interval)
                except queue.Empty:
                    pass
                else:
                    if line is None:
                        eof = True
                    else:
                        self._handle_line(line)
            else:
                try:
                    self._process.wait(timeout=self.poll_interval)
                    return
                except subprocess.TimeoutExpired:
                    pass

            if self.cancel_event is not None and self.cancel_event.is_set():
                self.kill()
                raise Cancelled(self.stage)
            if time.monotonic() >= deadline:
                self.kill()
                raise TimeoutExceeded(self.stage, self.timeout)

    def _handle_line(self, line: str):
        line = line.rstrip("\r\n")
        if not line.strip():
            return
        self._tail.append(line)
        if self.on_line:
            self.on_line(line)

    def _spawn_reader(self, target: Callable[[IO[str]], None], stream: IO[str]):
        reader = threading.Thread(target=target, args=(stream,), daemon=True)
        reader.start()
        self._readers.append(reader)

    def _read_lines(self, stream: IO[str]):
        try:
            for line in stream:
                self._lines.put(line)
        except (OSError, ValueError):
            pass  # stream closed by kill()
        finally:
            self._lines.put(None)

    def _read_all(self, stream: IO[str]):
        try:
            self._stdout_chunks.append(stream.read())
        except (OSError, ValueError):
            pass

    def _join_readers(self):
        for reader in self._readers:
            reader.join(timeout=self.kill_grace)
        for stream in (self._process.stdout, self._process.stderr):
            if stream is not None and not stream.closed:
                try:
                    stream.close()
                except OSError:
                    pass
