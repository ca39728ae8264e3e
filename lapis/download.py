"""Definition of the download engine: a streamed single-file download with stall
detection, a batch download list running on a bounded pool of threads with per-file
retry, and the reconciliation of expected files against the disk.
"""

from http.client import HTTPConnection, HTTPSConnection, HTTPException
from concurrent.futures import ThreadPoolExecutor
from queue import Queue, Empty
from threading import Thread, Event
from pathlib import Path
import urllib.parse
import hashlib
import logging
import socket

from .error import DownloadError, ParseError
from .util import calc_file_sha1
from .http import ssl_context
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, Dict, List, Tuple, Union, Any


__all__ = ["DownloadEntry", "DownloadList", "download", "reconcile",
    "DownloadStartEvent", "DownloadFileProgressEvent", "DownloadProgressEvent",
    "DownloadCompleteEvent"]

logger = logging.getLogger(__name__)

# Maximum number of downloads in flight at the same time.
MAX_CONCURRENT = 10
# Number of attempts for each file of a batch.
RETRY_COUNT = 3
# Delay in seconds between two attempts of the same file.
RETRY_DELAY = 5.0
# Inactivity window in seconds after which a connection is considered stalled.
STALL_TIMEOUT = 10.0
# Maximum number of redirections followed for a single file.
MAX_REDIRECTS = 5

ConnCache = Dict[Tuple[bool, str], Union[HTTPConnection, HTTPSConnection]]


class DownloadEntry:
    """A file expected at a given destination, with its source URL and optionally its
    expected size and SHA-1. The category is only informative and is given in progress
    events.
    """

    ASSET = "asset"
    LIBRARY = "library"
    JVM = "jvm"
    CUSTOM = "custom"

    __slots__ = "url", "dst", "size", "sha1", "name", "category", "executable"

    def __init__(self,
        url: str,
        dst: Path, *,
        size: Optional[int] = None,
        sha1: Optional[str] = None,
        name: Optional[str] = None,
        category: str = CUSTOM,
        executable: bool = False
    ) -> None:
        self.url = url
        self.dst = dst
        self.size = size
        self.sha1 = sha1
        self.name = url if name is None else name
        self.category = category
        self.executable = executable

    def __repr__(self) -> str:
        return f"<DownloadEntry {self.name}>"

    def __hash__(self) -> int:
        # Making size and sha1 in the hash is useful to make them,
        # this means that once added to a dictionary, these attributes
        # should not be modified.
        return hash((self.url, self.dst, self.size, self.sha1))

    def __eq__(self, other):
        return isinstance(other, DownloadEntry) and \
            (self.url, self.dst, self.size, self.sha1) == \
            (other.url, other.dst, other.size, other.sha1)

    def is_broken(self) -> bool:
        """Return true if this entry needs to be downloaded: the file is absent, or an
        expected SHA-1 is given and the file's content doesn't match it. Entries without
        URL can't be downloaded and are never considered broken.
        """
        if not len(self.url):
            return False
        if not self.dst.is_file():
            return True
        if self.sha1:
            try:
                return calc_file_sha1(self.dst) != self.sha1
            except OSError:
                return True
        return False


class DownloadStartEvent:
    """Event triggered when a batch download starts.
    """
    __slots__ = "threads_count", "entries_count", "size"
    def __init__(self, threads_count: int, entries_count: int, size: int) -> None:
        self.threads_count = threads_count
        self.entries_count = entries_count
        self.size = size

class DownloadFileProgressEvent:
    """Event triggered after each chunk received for a single file. The total is zero
    when the server didn't announce the content length.
    """
    __slots__ = "path", "size", "total"
    def __init__(self, path: str, size: int, total: int) -> None:
        self.path = path
        self.size = size
        self.total = total

class DownloadProgressEvent:
    """Event triggered each time a file of a batch has been successfully downloaded.
    """
    __slots__ = "path", "count", "total", "category"
    def __init__(self, path: str, count: int, total: int, category: str) -> None:
        self.path = path
        self.count = count
        self.total = total
        self.category = category

class DownloadCompleteEvent:
    """Event triggered when a batch download has completed.
    """
    __slots__ = tuple()


def _parse_url(url: str) -> urllib.parse.ParseResult:
    # We only support HTTP/HTTPS
    url_parsed = urllib.parse.urlparse(url)
    if url_parsed.scheme not in ("http", "https"):
        raise ParseError(f"unsupported scheme '{url_parsed.scheme}://' from url {url}")
    return url_parsed


def download(url: str, dst: Path, *,
    watcher: Any = None,
    conn_cache: Optional[ConnCache] = None,
    stall_timeout: float = STALL_TIMEOUT,
    size: Optional[int] = None,
    sha1: Optional[str] = None
) -> int:
    """Stream the body of the given URL to the destination file, parent directories are
    created if needed. A progress event is given to the watcher after each chunk.

    :param watcher: Any object with a `handle(event)` method, may be None.
    :param conn_cache: Connections to reuse, keyed by (https, host). If not given, a
    cache is created for this call only and its connections are closed on return.
    :param stall_timeout: Maximum time in seconds to wait for the next chunk.
    :return: The number of bytes written.
    :raises DownloadError: On non-successful status, stalled or broken connection, or
    if the downloaded file doesn't match the given size or sha1.
    """

    entry = DownloadEntry(url, dst, size=size, sha1=sha1)
    _parse_url(url)

    if conn_cache is not None:
        return _download_entry(entry, conn_cache, stall_timeout, watcher)

    conn_cache = {}
    try:
        return _download_entry(entry, conn_cache, stall_timeout, watcher)
    finally:
        for conn in conn_cache.values():
            conn.close()


def _download_entry(entry: DownloadEntry,
    conn_cache: ConnCache,
    stall_timeout: float,
    watcher: Any,
    stop: Optional[Event] = None
) -> int:
    """Internal function doing a single download attempt of the given entry. If the
    stop event is set while receiving, the attempt is aborted and the partial file is
    removed.
    """

    url = entry.url
    buffer = memoryview(bytearray(65536))

    for _redirect in range(MAX_REDIRECTS + 1):

        url_parsed = _parse_url(url)
        https = url_parsed.scheme == "https"
        conn_key = (https, url_parsed.netloc)
        target = url_parsed.path or "/"
        if url_parsed.query:
            target = f"{target}?{url_parsed.query}"

        # Get connection from cache or create it.
        conn = conn_cache.get(conn_key)
        if conn is None:
            if https:
                conn = HTTPSConnection(url_parsed.hostname or "", url_parsed.port, timeout=stall_timeout, context=ssl_context())
            else:
                conn = HTTPConnection(url_parsed.hostname or "", url_parsed.port, timeout=stall_timeout)
            conn_cache[conn_key] = conn

        written = False

        try:

            conn.request("GET", target, headers={"User-Agent": f"{LAUNCHER_NAME}/{LAUNCHER_VERSION}"})
            res = conn.getresponse()

            if res.status in (301, 302, 303, 307, 308):
                # Skip all bytes in the stream to allow further requests.
                while res.readinto(buffer):
                    pass
                location = res.getheader("Location")
                if location is None:
                    raise DownloadError(url, f"redirect status {res.status} without location")
                url = urllib.parse.urljoin(url, location)
                continue

            if res.status < 200 or res.status >= 300:
                while res.readinto(buffer):
                    pass
                raise DownloadError(url, f"unexpected status {res.status} {res.reason}")

            total = int(res.getheader("Content-Length") or entry.size or 0)
            sha1 = None if not entry.sha1 else hashlib.sha1()
            size = 0
            path_str = str(entry.dst)

            entry.dst.parent.mkdir(parents=True, exist_ok=True)
            written = True
            with entry.dst.open("wb") as dst_fp:
                while True:

                    if stop is not None and stop.is_set():
                        raise DownloadError(url, "download aborted")

                    # The connection timeout bounds the wait for each chunk, this is
                    # where a stalled connection is detected.
                    read_len = res.readinto(buffer)
                    if not read_len:
                        break

                    size += read_len
                    buffer_view = buffer[:read_len]
                    if sha1 is not None:
                        sha1.update(buffer_view)
                    dst_fp.write(buffer_view)

                    if watcher is not None:
                        watcher.handle(DownloadFileProgressEvent(path_str, size, total))

            if entry.size is not None and size != entry.size:
                raise DownloadError(url, f"invalid size, got {size}, expected {entry.size}")
            if sha1 is not None and sha1.hexdigest() != entry.sha1:
                raise DownloadError(url, f"invalid sha1, got {sha1.hexdigest()}, expected {entry.sha1}")

            # If the entry should be executable, only those that can read would be
            # able to execute it.
            if entry.executable:
                prev_mode = entry.dst.stat().st_mode
                entry.dst.chmod(prev_mode | ((prev_mode & 0o444) >> 2))

            return size

        except socket.timeout as error:
            _drop_conn(conn_cache, conn_key)
            _unlink_partial(entry, written)
            raise DownloadError(url, f"stalled connection, no data for {stall_timeout} seconds", error)
        except (OSError, HTTPException) as error:
            # On errors, we just throw away the old connection and create a new one.
            _drop_conn(conn_cache, conn_key)
            _unlink_partial(entry, written)
            raise DownloadError(url, f"connection error: {error}", error)
        except DownloadError:
            _unlink_partial(entry, written)
            raise

    raise DownloadError(entry.url, "too many redirects")


def _drop_conn(conn_cache: ConnCache, conn_key: Tuple[bool, str]) -> None:
    conn = conn_cache.pop(conn_key, None)
    if conn is not None:
        conn.close()


def _unlink_partial(entry: DownloadEntry, written: bool) -> None:
    if written:
        try:
            entry.dst.unlink()
        except FileNotFoundError:
            pass  # Not a problem if the file isn't present.


class DownloadList:
    """A download list, composed of entries that can be downloaded all at once in batch
    with multithreading.
    """

    __slots__ = "entries", "count", "size", "_dsts"

    def __init__(self):
        self.entries: List[DownloadEntry] = []
        self.count = 0
        self.size = 0
        self._dsts = set()

    def clear(self) -> None:
        """Clear the download entry, removing all entries and computed count/size.
        """
        self.entries.clear()
        self._dsts.clear()
        self.count = 0
        self.size = 0

    def add(self, entry: DownloadEntry) -> None:
        """Add a download entry to this list. An entry with the same destination as an
        already added one is ignored, a single file is never written concurrently.

        :raises ParseError: If the URL scheme is not supported.
        """

        _parse_url(entry.url)

        if entry.dst in self._dsts:
            return

        self._dsts.add(entry.dst)
        self.entries.append(entry)
        self.count += 1
        if entry.size is not None:
            self.size += entry.size

    def download(self, watcher: Any = None, *,
        threads_count: int = MAX_CONCURRENT,
        retry_count: int = RETRY_COUNT,
        retry_delay: float = RETRY_DELAY,
        stall_timeout: float = STALL_TIMEOUT
    ) -> None:
        """Execute the download, progress events are given to the watcher from the
        calling thread only.

        :param threads_count: The maximum number of downloads in flight.
        :param retry_count: The number of attempts for each file.
        :param retry_delay: Delay in seconds between two attempts of the same file.
        :raises DownloadError: The error of the first entry that exhausted all of its
        attempts, the remaining entries are not downloaded.
        """

        # Sort our entries in order to download big files first, this is allows better
        # parallelization at start and avoid too much blocking at the end of the download.
        # Note that entries without size are considered 1 Mio, to download early.
        self.entries.sort(key=lambda e: e.size or 1048576, reverse=True)

        entries_count = len(self.entries)
        if not entries_count or threads_count < 1:
            return

        threads_count = min(threads_count, entries_count)

        if watcher is not None:
            watcher.handle(DownloadStartEvent(threads_count, entries_count, self.size))

        entries_queue = Queue()
        result_queue = Queue()
        stop = Event()
        threads: List[Thread] = []

        for entry in self.entries:
            entries_queue.put(entry)

        for th_id in range(threads_count):
            th = Thread(target=_download_thread_wrapper,
                        args=(th_id, entries_queue, result_queue, stop, retry_count, retry_delay, stall_timeout),
                        daemon=True,
                        name=f"Download Thread {th_id}")
            th.start()
            threads.append(th)

        result_count = 0

        try:
            while result_count < entries_count:

                result = result_queue.get()

                if isinstance(result, DownloadFileProgressEvent):
                    if watcher is not None:
                        watcher.handle(result)
                elif isinstance(result, _DownloadResultSuccess):
                    result_count += 1
                    if watcher is not None:
                        watcher.handle(DownloadProgressEvent(str(result.entry.dst), result_count, entries_count, result.entry.category))
                elif isinstance(result, _DownloadResultError):
                    logger.debug("Download of %s failed after %d attempts", result.entry.name, retry_count)
                    raise result.error
                elif isinstance(result, _DownloadThreadCrash):
                    raise ValueError(f"unexpected crash from download thread {result.thread_id}", result.origin)

        finally:
            # Abort running downloads and drop entries that are not yet started, then
            # send one sentinel per thread. Threads are joined so that no file is still
            # being written once this method returns or raises.
            stop.set()
            while True:
                try:
                    entries_queue.get_nowait()
                except Empty:
                    break
            for _ in range(threads_count):
                entries_queue.put(None)
            for th in threads:
                th.join()

        if watcher is not None:
            watcher.handle(DownloadCompleteEvent())


class _DownloadResultSuccess:
    __slots__ = "entry", "size"
    def __init__(self, entry: DownloadEntry, size: int) -> None:
        self.entry = entry
        self.size = size


class _DownloadResultError:
    __slots__ = "entry", "error"
    def __init__(self, entry: DownloadEntry, error: DownloadError) -> None:
        self.entry = entry
        self.error = error


class _DownloadThreadCrash:
    """Unexpected exception happening in a thread, this is the result of a bad logic
    from programmer.
    """
    __slots__ = "thread_id", "origin",
    def __init__(self, thread_id: int, origin: Optional[Exception]) -> None:
        self.thread_id = thread_id
        self.origin = origin


class _QueueWatcher:
    """Forward events of a download thread to the result queue, so that the watcher of
    the batch is only called from the calling thread.
    """
    __slots__ = "queue",
    def __init__(self, queue: Queue) -> None:
        self.queue = queue
    def handle(self, event: Any) -> None:
        self.queue.put(event)


def _download_thread_wrapper(
    thread_id: int,
    entries_queue: Queue,
    result_queue: Queue,
    stop: Event,
    retry_count: int,
    retry_delay: float,
    stall_timeout: float
) -> None:
    """Wrapper for the download thread that basically ensures that any unexpected error
    sends a signal (DownloadThreadCrash) to the master to signal the crash.
    """
    try:
        _download_thread(entries_queue, result_queue, stop, retry_count, retry_delay, stall_timeout)
    except Exception as e:
        result_queue.put(_DownloadThreadCrash(thread_id, e))


def _download_thread(
    entries_queue: Queue,
    result_queue: Queue,
    stop: Event,
    retry_count: int,
    retry_delay: float,
    stall_timeout: float
) -> None:
    """This function is internally used for multi-threaded download.

    :param entries_queue: Where entries to download are received.
    :param result_queue: Where threads send progress update.
    :param stop: Set by the master when the batch is aborted.
    """

    # Cache for connections depending on host and https
    conn_cache: ConnCache = {}
    watcher = _QueueWatcher(result_queue)

    try:
        while True:

            entry: Optional[DownloadEntry] = entries_queue.get()

            # None is a sentinel to stop the thread, it should be consumed ONCE.
            if entry is None:
                break

            try_num = 0
            while not stop.is_set():
                try_num += 1
                try:
                    size = _download_entry(entry, conn_cache, stall_timeout, watcher, stop)
                    result_queue.put(_DownloadResultSuccess(entry, size))
                    break
                except ParseError as error:
                    # Redirected to an unsupported URL, retrying is pointless.
                    result_queue.put(_DownloadResultError(entry, DownloadError(entry.url, str(error), error)))
                    break
                except DownloadError as error:
                    if stop.is_set():
                        break
                    if try_num >= retry_count:
                        result_queue.put(_DownloadResultError(entry, error))
                        break
                    logger.debug("Retrying download of %s (%s)", entry.name, error.reason)
                    # Wait before the next attempt, unless the batch is aborted meanwhile.
                    if stop.wait(retry_delay):
                        break

    finally:
        for conn in conn_cache.values():
            conn.close()


def reconcile(entries: List[DownloadEntry], *, threads_count: Optional[int] = None) -> List[DownloadEntry]:
    """Return the broken subset of the given entries, in the same order. SHA-1 digests
    are computed in parallel, the hash function releases the GIL on large buffers.
    """

    if not len(entries):
        return []

    with ThreadPoolExecutor(max_workers=threads_count) as executor:
        broken = list(executor.map(DownloadEntry.is_broken, entries))

    return [entry for entry, entry_broken in zip(entries, broken) if entry_broken]
