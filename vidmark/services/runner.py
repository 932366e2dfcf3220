import contextlib
import logging
import shutil
import subprocess
import threading
from collections.abc import Iterator
from typing import BinaryIO, Protocol

from vidmark.core.errors import ProcessError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class OutputSink(Protocol):
    def write(self, data: bytes) -> object: ...


class DiagnosticBuffer:
    """Keeps the last ``limit`` bytes written to a process's stderr."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._data = bytearray()
        self._lock = threading.Lock()

    def append(self, chunk: bytes) -> None:
        with self._lock:
            self._data.extend(chunk)
            overflow = len(self._data) - self.limit
            if overflow > 0:
                del self._data[:overflow]

    def drain(self, stream: BinaryIO) -> None:
        for chunk in iter(lambda: stream.read(4096), b""):
            self.append(chunk)
        stream.close()

    def text(self) -> str:
        with self._lock:
            return self._data.decode("utf-8", errors="replace")


class ProcessRunner:
    def __init__(self, timeout_seconds: float | None = None, diagnostic_limit: int = 8192) -> None:
        self.timeout_seconds = timeout_seconds
        self.diagnostic_limit = diagnostic_limit

    def run(
        self,
        executable: str,
        args: list[str],
        *,
        input_stream: BinaryIO | None = None,
        output_sink: OutputSink | None = None,
    ) -> None:
        process, diagnostics, readers = self._spawn(executable, args, input_stream, capture_stdout=output_sink is not None)
        timer, timed_out = self._arm_deadline(process)
        try:
            if output_sink is not None and process.stdout is not None:
                for chunk in iter(lambda: process.stdout.read(CHUNK_SIZE), b""):
                    output_sink.write(chunk)
                process.stdout.close()
            process.wait()
        finally:
            self._reap(process, timer, readers)
        self._check(process, diagnostics, timed_out)

    def stream(self, executable: str, args: list[str], *, input_stream: BinaryIO | None = None) -> Iterator[bytes]:
        process, diagnostics, readers = self._spawn(executable, args, input_stream, capture_stdout=True)
        timer, timed_out = self._arm_deadline(process)
        try:
            assert process.stdout is not None
            for chunk in iter(lambda: process.stdout.read(CHUNK_SIZE), b""):
                yield chunk
            process.wait()
        finally:
            self._reap(process, timer, readers)
        self._check(process, diagnostics, timed_out)

    def _spawn(
        self,
        executable: str,
        args: list[str],
        input_stream: BinaryIO | None,
        capture_stdout: bool,
    ) -> tuple[subprocess.Popen, DiagnosticBuffer, list[threading.Thread]]:
        command = [shutil.which(executable) or executable, *args]
        logger.info("process_start", extra={"executable": executable, "arg_count": len(args)})
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE if input_stream is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_stdout else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessError(None, str(exc)) from exc

        diagnostics = DiagnosticBuffer(self.diagnostic_limit)
        readers = [threading.Thread(target=diagnostics.drain, args=(process.stderr,), daemon=True)]
        if input_stream is not None:
            readers.append(threading.Thread(target=_feed_stdin, args=(input_stream, process.stdin), daemon=True))
        for reader in readers:
            reader.start()
        return process, diagnostics, readers

    def _arm_deadline(self, process: subprocess.Popen) -> tuple[threading.Timer | None, list[bool]]:
        timed_out: list[bool] = []
        if not self.timeout_seconds:
            return None, timed_out

        def _kill() -> None:
            timed_out.append(True)
            process.kill()

        timer = threading.Timer(self.timeout_seconds, _kill)
        timer.daemon = True
        timer.start()
        return timer, timed_out

    def _reap(
        self,
        process: subprocess.Popen,
        timer: threading.Timer | None,
        readers: list[threading.Thread],
    ) -> None:
        # a child still running here would hold its pipes open forever
        if timer is not None:
            timer.cancel()
        if process.poll() is None:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()
        for reader in readers:
            reader.join()

    def _check(self, process: subprocess.Popen, diagnostics: DiagnosticBuffer, timed_out: list[bool]) -> None:
        text = diagnostics.text()
        if timed_out:
            logger.warning("process_timed_out", extra={"timeout_seconds": self.timeout_seconds})
            raise ProcessError(None, text, message=f"ffmpeg timed out after {self.timeout_seconds:g}s")
        if process.returncode != 0:
            logger.warning("process_failed", extra={"exit_code": process.returncode})
            raise ProcessError(process.returncode, text)
        logger.info("process_succeeded")


def _feed_stdin(source: BinaryIO, sink: BinaryIO) -> None:
    try:
        for chunk in iter(lambda: source.read(CHUNK_SIZE), b""):
            sink.write(chunk)
    except BrokenPipeError:
        logger.warning("process_stdin_closed_early")
    finally:
        with contextlib.suppress(BrokenPipeError):
            sink.close()
