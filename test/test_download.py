from threading import Lock
import threading
import hashlib
import time
import pytest

from lapis.download import DownloadEntry, DownloadList, download, reconcile, \
    DownloadStartEvent, DownloadFileProgressEvent, DownloadProgressEvent, DownloadCompleteEvent
from lapis.error import DownloadError, ParseError

from conftest import CollectWatcher, send_bytes


def test_download(http_server, tmp_path):

    data = b"hello world!" * 10000
    url = http_server.add("file.bin", data)
    dst = tmp_path / "sub" / "file.bin"

    watcher = CollectWatcher()
    size = download(url, dst, watcher=watcher, size=len(data), sha1=hashlib.sha1(data).hexdigest())

    assert size == len(data)
    assert dst.read_bytes() == data

    progress = watcher.of_type(DownloadFileProgressEvent)
    assert len(progress)
    assert progress[-1].size == len(data)
    assert progress[-1].total == len(data)
    assert all(a.size < b.size for a, b in zip(progress, progress[1:]))


def test_download_errors(http_server, tmp_path):

    data = b"hello world!"
    url = http_server.add("file.txt", data)

    with pytest.raises(DownloadError):
        download(f"{http_server.url}not_found.txt", tmp_path / "not_found.txt")
    assert not (tmp_path / "not_found.txt").exists()

    with pytest.raises(DownloadError):
        download(url, tmp_path / "wrong_sha1.txt", sha1="0" * 40)
    assert not (tmp_path / "wrong_sha1.txt").exists()

    with pytest.raises(DownloadError):
        download(url, tmp_path / "wrong_size.txt", size=3)
    assert not (tmp_path / "wrong_size.txt").exists()

    with pytest.raises(ParseError):
        download("ssh://foo.bar/file.txt", tmp_path / "ssh.txt")


def test_download_redirect(http_server, tmp_path):

    data = b"redirected"
    http_server.add("target.txt", data)

    def redirect(handler):
        handler.send_response(302)
        handler.send_header("Location", "/target.txt")
        handler.send_header("Content-Length", "0")
        handler.end_headers()

    url = http_server.add("redirect.txt", redirect)
    assert download(url, tmp_path / "file.txt") == len(data)
    assert (tmp_path / "file.txt").read_bytes() == data


def test_download_stalled(http_server, tmp_path):

    def stall(handler):
        handler.send_response(200)
        handler.send_header("Content-Length", "1000")
        handler.end_headers()
        handler.wfile.write(b"partial")
        handler.wfile.flush()
        time.sleep(2.0)

    url = http_server.add("stall.bin", stall)
    dst = tmp_path / "stall.bin"

    with pytest.raises(DownloadError) as exc_info:
        download(url, dst, stall_timeout=0.5)

    assert "stalled" in exc_info.value.reason
    assert not dst.exists()


def test_download_list(http_server, tmp_path):

    dl = DownloadList()
    expected = {}
    for i in range(20):
        data = f"file number {i}".encode() * (i + 1)
        url = http_server.add(f"files/{i}.txt", data)
        dst = tmp_path / "files" / f"{i}.txt"
        expected[dst] = data
        dl.add(DownloadEntry(url, dst, size=len(data), sha1=hashlib.sha1(data).hexdigest(), category=DownloadEntry.ASSET))

    # Same destination, ignored.
    dl.add(DownloadEntry(f"{http_server.url}files/0.txt", tmp_path / "files" / "0.txt"))
    assert dl.count == 20

    with pytest.raises(ParseError):
        dl.add(DownloadEntry("ssh://foo.bar", tmp_path / "invalid"))
    with pytest.raises(ParseError):
        dl.add(DownloadEntry("", tmp_path / "empty"))

    watcher = CollectWatcher()
    dl.download(watcher, retry_delay=0)

    for dst, data in expected.items():
        assert dst.read_bytes() == data

    assert isinstance(watcher.events[0], DownloadStartEvent)
    assert watcher.events[0].entries_count == 20
    assert isinstance(watcher.events[-1], DownloadCompleteEvent)

    progress = watcher.of_type(DownloadProgressEvent)
    assert [e.count for e in progress] == list(range(1, 21))
    assert all(e.total == 20 and e.category == DownloadEntry.ASSET for e in progress)


def test_download_list_retry(http_server, tmp_path):

    data = b"third time lucky"

    def flaky(handler):
        if http_server.hits["/flaky.txt"] < 3:
            send_bytes(handler, b"error", 500)
        else:
            send_bytes(handler, data)

    url = http_server.add("flaky.txt", flaky)

    dl = DownloadList()
    dl.add(DownloadEntry(url, tmp_path / "flaky.txt"))
    dl.download(retry_delay=0)

    assert (tmp_path / "flaky.txt").read_bytes() == data
    assert http_server.hits["/flaky.txt"] == 3


def test_download_list_fail_fast(http_server, tmp_path):

    dl = DownloadList()
    dl.add(DownloadEntry(f"{http_server.url}missing.txt", tmp_path / "missing.txt", size=1 << 30))

    with pytest.raises(DownloadError):
        dl.download(retry_delay=0)

    assert http_server.hits["/missing.txt"] == 3
    assert not (tmp_path / "missing.txt").exists()


def test_download_list_abort(http_server, tmp_path):

    def late(handler):
        time.sleep(1.0)
        send_bytes(handler, b"late content" * 1000)

    dl = DownloadList()
    dl.add(DownloadEntry(f"{http_server.url}missing.txt", tmp_path / "missing.txt"))
    dl.add(DownloadEntry(http_server.add("late.bin", late), tmp_path / "late.bin"))

    with pytest.raises(DownloadError):
        dl.download(threads_count=2, retry_delay=0)

    # Running downloads are aborted before the error is raised.
    assert not any(th.name.startswith("Download Thread") for th in threading.enumerate())
    assert not (tmp_path / "late.bin").exists()

    time.sleep(0.5)
    assert not (tmp_path / "late.bin").exists()


def test_download_list_concurrency(http_server, tmp_path):

    lock = Lock()
    state = {"current": 0, "max": 0}

    def slow(handler):
        with lock:
            state["current"] += 1
            state["max"] = max(state["max"], state["current"])
        try:
            time.sleep(0.05)
            send_bytes(handler, handler.path.encode())
        finally:
            with lock:
                state["current"] -= 1

    dl = DownloadList()
    for i in range(50):
        url = http_server.add(f"slow/{i}", slow)
        dl.add(DownloadEntry(url, tmp_path / "slow" / str(i)))

    dl.download(retry_delay=0)

    assert all((tmp_path / "slow" / str(i)).read_bytes() == f"/slow/{i}".encode() for i in range(50))
    assert 1 <= state["max"] <= 10


def test_reconcile(tmp_path):

    data = b"hello world!"
    sha1 = "430ce34d020724ed75a196dfc2ad67c77772d169"

    valid = tmp_path / "valid.txt"
    valid.write_bytes(data)
    corrupted = tmp_path / "corrupted.txt"
    corrupted.write_bytes(b"hello world?")
    unchecked = tmp_path / "unchecked.txt"
    unchecked.write_bytes(b"anything")

    entries = [
        DownloadEntry("http://127.0.0.1/missing.txt", tmp_path / "missing.txt", sha1=sha1),
        DownloadEntry("http://127.0.0.1/valid.txt", valid, sha1=sha1),
        DownloadEntry("http://127.0.0.1/corrupted.txt", corrupted, sha1=sha1),
        DownloadEntry("http://127.0.0.1/unchecked.txt", unchecked),
        DownloadEntry("http://127.0.0.1/unchecked_missing.txt", tmp_path / "unchecked_missing.txt"),
        DownloadEntry("", tmp_path / "no_url.txt"),
    ]

    broken = reconcile(entries)
    assert broken == [entries[0], entries[2], entries[4]]

    assert reconcile([]) == []
