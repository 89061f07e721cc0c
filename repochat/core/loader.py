"""Source loaders and corpus identity.

A loader turns a source descriptor (a local checkout path or a repository
URL) into text files. Loaders apply their own ignore/filter policy; the
rest of the pipeline trusts every returned file as chunkable text.
"""

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Optional, Protocol

from .chunk import LoadedSource, SourceFile
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

GITHUB_URL_RE = re.compile(
    r"^(?:https?://|git@)?(?:www\.)?github\.com[/:]([^/\s]+)/([^/\s#?]+)"
)

IGNORED_DIRS = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    "coverage",
    ".next",
    ".vscode",
    ".idea",
    "target",
    "bin",
    "obj",
    ".cache",
    "__pycache__",
    ".venv",
})

TEXT_EXTENSIONS = frozenset({
    ".ts", ".js", ".tsx", ".jsx",
    ".py", ".pyx", ".go", ".rs", ".java", ".kt", ".kts", ".c", ".cpp", ".cc",
    ".cxx", ".h", ".hpp", ".cs", ".rb", ".php", ".swift", ".gradle",
    ".md", ".txt", ".json", ".yml", ".yaml", ".toml", ".xml", ".cfg", ".ini",
    ".html", ".css", ".scss", ".less",
    ".sh", ".bash", ".zsh",
    ".sql", ".graphql",
    ".env", ".gitignore", ".dockerignore", ".dockerfile",
})

TEXT_FILENAMES = frozenset({
    "readme",
    "makefile",
    "dockerfile",
    "gemfile",
    "pipfile",
    "go.mod",
    "go.sum",
    "cargo.lock",
})


class SourceLoader(Protocol):
    """Protocol for repository loaders."""

    def load(self, descriptor: str) -> LoadedSource:
        """Fetch every text file for a source descriptor.

        Args:
            descriptor: Local path or repository URL.

        Returns:
            LoadedSource with files (and README text when present).
        """
        ...


def is_github_url(descriptor: str) -> bool:
    """Whether the descriptor is a GitHub repository URL (https or ssh form)."""
    return bool(GITHUB_URL_RE.match(descriptor.strip()))


def parse_github_url(url: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub URL.

    Raises:
        InvalidInputError: If the URL does not point at a GitHub repository.
    """
    match = GITHUB_URL_RE.match(url.strip())
    if not match:
        raise InvalidInputError(f"Invalid GitHub URL format: {url!r}")
    owner, repo = match.groups()
    return owner, re.sub(r"\.git$", "", repo)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9._-]+", "-", text.lower()).strip("-") or "repo"


def corpus_id_for(descriptor: str) -> str:
    """Stable corpus id for a source descriptor.

    GitHub URLs map to ``github-{owner}-{repo}`` (lower-cased, ``.git``
    stripped). Anything else is treated as a local path and maps to
    ``local-{dirname}-{sha1(resolved path)[:8]}``.

    Raises:
        InvalidInputError: For blank descriptors or non-GitHub URLs.
    """
    if not isinstance(descriptor, str) or not descriptor.strip():
        raise InvalidInputError("Source descriptor must be a non-empty string")
    descriptor = descriptor.strip()

    if is_github_url(descriptor):
        owner, repo = parse_github_url(descriptor)
        return f"github-{_slug(owner)}-{_slug(repo)}"
    if "://" in descriptor:
        raise InvalidInputError(f"Unsupported source URL: {descriptor!r}")

    path = Path(descriptor).expanduser().resolve()
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:8]
    return f"local-{_slug(path.name)}-{digest}"


def is_text_file(path: str) -> bool:
    """Whether a file looks like source text worth indexing."""
    name = os.path.basename(path).lower()
    return name in TEXT_FILENAMES or os.path.splitext(name)[1] in TEXT_EXTENSIONS


class LocalRepoLoader:
    """Loads a repository checkout from the local filesystem.

    Skips ignored directories (node_modules, .git, build output, ...),
    non-text files, files above ``max_file_bytes``, and files that are not
    valid UTF-8. Paths are returned relative to the root with forward slashes,
    in sorted order so repeated loads are identical.
    """

    def __init__(self, max_file_bytes: int = 1_000_000):
        """Initialize loader.

        Args:
            max_file_bytes: Files larger than this are skipped.
        """
        self.max_file_bytes = max_file_bytes

    def load(self, descriptor: str) -> LoadedSource:
        """Read every text file under a local directory.

        Raises:
            InvalidInputError: If descriptor is a URL or not a directory.
        """
        if "://" in descriptor or is_github_url(descriptor):
            raise InvalidInputError(
                f"LocalRepoLoader only reads local directories, got {descriptor!r}"
            )
        root = Path(descriptor).expanduser().resolve()
        if not root.is_dir():
            raise InvalidInputError(f"Not a directory: {root}")

        files: list[SourceFile] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
            for filename in sorted(filenames):
                full = Path(dirpath) / filename
                rel = full.relative_to(root).as_posix()
                if not is_text_file(rel):
                    continue
                text = self._read_text(full, rel)
                if text is not None:
                    files.append(SourceFile(path=rel, content=text))

        logger.info("Loaded %d files from %s", len(files), root)
        return LoadedSource(
            files=files,
            readme=self._find_readme(files),
            name=root.name,
        )

    def _read_text(self, path: Path, rel: str) -> Optional[str]:
        try:
            if path.stat().st_size > self.max_file_bytes:
                logger.warning("Skipping %s: larger than %d bytes", rel, self.max_file_bytes)
                return None
            return path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping %s: not valid UTF-8", rel)
        except OSError as exc:
            logger.warning("Skipping %s: %s", rel, exc)
        return None

    @staticmethod
    def _find_readme(files: list[SourceFile]) -> Optional[str]:
        for source in files:
            if "/" not in source.path and source.path.lower().startswith("readme"):
                return source.content
        return None
