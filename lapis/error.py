"""Errors raised by the installer. Every fatal error of an install is an instance of
`InstallError`, callers that want to resume an install just have to call it again.
"""

from typing import Optional


__all__ = ["InstallError", "DownloadError", "NotFoundError", "VersionNotFoundError",
    "UnsupportedArchitectureError", "ParseError", "ProcessorError"]


class InstallError(Exception):
    """Base class of all installer errors.
    """


class DownloadError(InstallError):
    """A file could not be downloaded: the server returned a non-successful status, the
    connection failed or stalled, or the received content doesn't match the expected
    size or SHA-1.
    """

    def __init__(self, url: str, reason: str, origin: Optional[Exception] = None) -> None:
        super().__init__(url, reason)
        self.url = url
        self.reason = reason
        self.origin = origin

    def __str__(self) -> str:
        return f"{self.reason} ({self.url})"


class NotFoundError(InstallError):
    """An expected entry is missing: archive member, manifest field, main class of a
    processor...
    """

    def __init__(self, what: str) -> None:
        super().__init__(what)
        self.what = what

    def __str__(self) -> str:
        return f"not found: {self.what}"


class VersionNotFoundError(InstallError):
    """The requested game, loader or runtime version is absent from a remote catalog.
    """

    def __init__(self, version: str) -> None:
        super().__init__(version)
        self.version = version

    def __str__(self) -> str:
        return f"version not found: {self.version}"


class UnsupportedArchitectureError(InstallError):
    """No Java runtime is distributed for the host's platform and architecture.
    """

    def __init__(self, system: str, machine: str) -> None:
        super().__init__(system, machine)
        self.system = system
        self.machine = machine

    def __str__(self) -> str:
        return f"unsupported architecture: {self.system}/{self.machine}"


class ParseError(InstallError, ValueError):
    """Malformed input: artifact coordinate, JSON document or metadata structure.
    """


class ProcessorError(InstallError):
    """A post-install processor exited with a non-zero status, or its outputs are not
    the expected ones. The output of the process is kept for diagnostics.
    """

    def __init__(self, jar: str, message: str, output: str = "") -> None:
        super().__init__(jar, message)
        self.jar = jar
        self.message = message
        self.output = output

    def __str__(self) -> str:
        if len(self.output):
            return f"processor {self.jar} failed: {self.message}\n{self.output}"
        return f"processor {self.jar} failed: {self.message}"
