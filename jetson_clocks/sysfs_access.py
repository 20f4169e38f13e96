"""
Sysfs Access
Scoped whole-file read and write of single kernel control files
"""
import logging
import os
from typing import Callable, List, Optional

import psutil

from .errors import IOFailure, ParseFailure, PathNotFound, PermissionDenied

logger = logging.getLogger(__name__)


def running_as_root() -> bool:
    """Check if this process is running with root user permissions"""
    return psutil.Process().uids().effective == 0


def tokenize(text: str) -> List[str]:
    """Split control file contents on whitespace, dropping NUL padding"""
    return text.replace('\x00', ' ').split()


def parse_int(text: str, path: str = "") -> int:
    """Parse a single integer value read from a control file"""
    value = text.replace('\x00', '').strip()
    try:
        return int(value)
    except ValueError:
        raise ParseFailure(f"cannot parse {value!r} from {path or 'control file'} as an integer")


def parse_int_list(text: str, path: str = "") -> List[int]:
    """Parse a whitespace separated list of integers"""
    return [parse_int(token, path) for token in tokenize(text)]


class SysfsAccessor:
    """Reads and writes control files below a filesystem root"""

    def __init__(self, root: str = "/", privilege_check: Optional[Callable[[], bool]] = None):
        self.root = root
        self._privilege_check = privilege_check or running_as_root

    def resolve(self, path: str) -> str:
        """Map an absolute control file path onto this accessor's root"""
        return os.path.join(self.root, path.lstrip('/'))

    def exists(self, path: str) -> bool:
        return os.path.exists(self.resolve(path))

    def writable(self, path: str) -> bool:
        full_path = self.resolve(path)
        return os.path.isfile(full_path) and os.access(full_path, os.W_OK)

    def list_subdirs(self, path: str) -> List[str]:
        """List the directory names directly below path"""
        full_path = self.resolve(path)
        if not os.path.isdir(full_path):
            raise PathNotFound(f"{path} does not exist.")
        try:
            return sorted(
                entry for entry in os.listdir(full_path)
                if os.path.isdir(os.path.join(full_path, entry))
            )
        except OSError as e:
            raise IOFailure(f"cannot list {path}: {e}") from e

    def has_privilege(self) -> bool:
        return bool(self._privilege_check())

    def require_privilege(self, operation: str) -> None:
        """Fail early when a mutating operation is attempted without root"""
        if not self.has_privilege():
            raise PermissionDenied(f"cannot {operation} without root permissions.")

    def read(self, path: str) -> str:
        """Read the whole contents of a control file"""
        full_path = self.resolve(path)
        if not os.path.exists(full_path):
            raise PathNotFound(f"{path} does not exist.")

        try:
            with open(full_path, 'r', encoding='utf-8') as f:
                return f.read()
        except PermissionError as e:
            raise PermissionDenied(f"cannot read {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ParseFailure(f"{path} is not valid text: {e}") from e
        except OSError as e:
            raise IOFailure(f"failed to read {path}: {e}") from e

    def read_int(self, path: str) -> int:
        return parse_int(self.read(path), path)

    def read_str(self, path: str) -> str:
        return self.read(path).replace('\x00', '').strip()

    def write(self, path: str, value) -> None:
        """Write a whole value to a control file, never creating it"""
        if not self.writable(path):
            raise PathNotFound(f"{path} is not writable.")

        try:
            with open(self.resolve(path), 'w') as f:
                f.write(str(value))
        except PermissionError as e:
            raise PermissionDenied(f"cannot write {path}: {e}") from e
        except OSError as e:
            raise IOFailure(f"failed to write {value} to {path}: {e}") from e

        logger.debug(f"Wrote {value} to {path}")
