"""Global utilities used internally. The functions can be used externally but upward
compatibility is not guaranteed unless explicitly specified.
"""

from pathlib import Path
import hashlib
import platform

from .error import ParseError

from typing import Optional, Tuple


jvm_bin_filename = "javaw.exe" if platform.system() == "Windows" else "java"

# Name of the OS has used by Minecraft.
minecraft_os = {
    "Linux": "linux",
    "Windows": "windows",
    "Darwin": "osx",
    "FreeBSD": "freebsd"
}.get(platform.system())

# Name of the processor's architecture has used by Minecraft.
minecraft_arch = {
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv7l": "arm32",
    "armv6l": "arm32",
}.get(platform.machine().lower())

# Stores the bits length of pointers on the current system.
minecraft_arch_bits = {
    "64bit": 64,
    "32bit": 32
}.get(platform.architecture()[0])


def calc_input_sha1(input_stream, *, buffer_len: int = 8192) -> str:
    """Internal function to calculate the sha1 of an input stream.

    :param input_stream: The input stream that supports `readinto`.
    :param buffer_len: Internal buffer length, defaults to 8192
    :return: The sha1 string.
    """
    h = hashlib.sha1()
    b = bytearray(buffer_len)
    mv = memoryview(b)
    for n in iter(lambda: input_stream.readinto(mv), 0):
        h.update(mv[:n])
    return h.hexdigest()


def calc_file_sha1(path: Path, *, buffer_len: int = 65536) -> str:
    """Calculate the sha1 of a file's content.

    :raises OSError: If the file cannot be opened or read.
    """
    with open(path, "rb") as fp:
        return calc_input_sha1(fp, buffer_len=buffer_len)


class LibrarySpecifier:
    """A maven-style library specifier.
    """

    __slots__ = "group", "artifact", "version", "classifier", "extension"

    def __init__(self, group: str, artifact: str, version: str, classifier: Optional[str] = None, extension: str = "jar"):
        self.group = group
        self.artifact = artifact
        self.version = version
        self.classifier = classifier
        self.extension = extension

    @classmethod
    def from_str(cls, s: str) -> "LibrarySpecifier":
        """Parse a library specifier string 'group:artifact:version[:classifier][@ext]'.

        :raises ParseError: If the specifier has less than 3 parts or an empty extension.
        """

        ext_split = s.rsplit("@", maxsplit=1)
        ext = "jar" if len(ext_split) == 1 else ext_split[1]

        if not len(ext):
            raise ParseError(f"invalid library specifier '{s}': empty extension")

        parts = ext_split[0].split(":", 3)

        if len(parts) < 3:
            raise ParseError(f"invalid library specifier '{s}': too few parts")
        else:
            return LibrarySpecifier(parts[0], parts[1], parts[2], parts[3] if len(parts) == 4 else None, ext)

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}" + \
            ("" if self.classifier is None else f":{self.classifier}") + \
            ("" if self.extension == "jar" else f"@{self.extension}")

    def __eq__(self, other) -> bool:
        return isinstance(other, LibrarySpecifier) and \
            (self.group, self.artifact, self.version, self.classifier, self.extension) == \
            (other.group, other.artifact, other.version, other.classifier, other.extension)

    def __repr__(self) -> str:
        return f"<LibrarySpecifier {self}>"

    def __hash__(self) -> int:
        return hash((self.group, self.artifact, self.version, self.classifier, self.extension))

    def identity(self) -> Tuple[str, str]:
        """Return the key identifying this library regardless of its version, two
        libraries with the same identity are considered the same dependency.
        """
        return self.group, self.artifact

    def file_path(self) -> str:
        """Return the standard path to store the file of this specifier.

        The path separator will always be forward slashes '/', because it's compatible
        with linux/mac/windows and URL paths.

        Specifier `com.foo.bar:artifact:version@zip` gives
        `com/foo/bar/artifact/version/artifact-version.zip`.
        """

        file_name = f"{self.artifact}-{self.version}" + \
            ("" if self.classifier is None else f"-{self.classifier}") + \
            f".{self.extension}"

        return "/".join([*self.group.split("."), self.artifact, self.version, file_name])


def lib_path(coordinate: str) -> str:
    """Shortcut to get the relative file path of the given maven coordinate.

    :raises ParseError: If the coordinate is malformed.
    """
    return LibrarySpecifier.from_str(coordinate).file_path()
