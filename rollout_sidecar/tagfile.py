"""Reads and writes the image tag key in the deployment's env file."""

from __future__ import annotations

from pathlib import Path

# Undecodable bytes in unrelated lines are carried through a rewrite as-is.
_ERRORS = "surrogateescape"


class EnvTagFile:
    """One ``KEY=VALUE`` entry inside a newline-delimited env file.

    Only the configured key is touched; every other line keeps its content
    and position. Bytes that are not valid UTF-8 round-trip unchanged.
    """

    def __init__(self, path: Path | str, key: str) -> None:
        self.path = Path(path)
        self.key = key

    def _matches(self, line: str) -> bool:
        return line.lstrip().startswith(f"{self.key}=")

    def read(self) -> str | None:
        """Return the configured tag, or None if the file or key is missing."""
        try:
            text = self.path.read_text(encoding="utf-8", errors=_ERRORS)
        except OSError:
            return None
        for line in text.split("\n"):
            if self._matches(line):
                value = line.strip()[len(self.key) + 1 :].strip()
                return value or None
        return None

    def write(self, tag: str) -> None:
        """Set the key to ``tag``, appending it if absent.

        Raises:
            OSError: If the file cannot be read or written.
        """
        text = self.path.read_text(encoding="utf-8", errors=_ERRORS)
        lines = text.split("\n")
        entry = f"{self.key}={tag}"
        for i, line in enumerate(lines):
            if self._matches(line):
                lines[i] = entry
                break
        else:
            if lines and lines[-1] == "":
                lines.insert(len(lines) - 1, entry)
            else:
                lines.append(entry)
        self.path.write_text("\n".join(lines), encoding="utf-8", errors=_ERRORS)
