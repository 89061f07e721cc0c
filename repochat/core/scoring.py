"""Heuristic relevance scoring for repository chunks.

This is the single source of truth for ranking. ChunkStore uses it to
order search results and Retriever uses it to decide when and how to widen
a thin result set. Scores are deterministic and need no external service:

    score = lexical overlap + language signal + file-type signal

The point values were tuned by hand against "what language is this
written in?"-style questions; they live in ScoringConfig so they can be
adjusted without touching the logic.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .chunk import Chunk, RetrievedChunk

logger = logging.getLogger(__name__)

PATH_INDICATOR_WEIGHT = 10.0
MANIFEST_WEIGHT = 15.0
README_WEIGHT = 8.0
STRONG_KEYWORD_WEIGHT = 5.0
WEAK_KEYWORD_WEIGHT = 3.0
WIDENED_CHUNK_SCORE = 0.5
MIN_TOKEN_LENGTH = 3

# Language name -> path substrings (extensions, manifests) that indicate it.
LANGUAGE_INDICATORS: dict[str, tuple[str, ...]] = {
    "java": (".java", "pom.xml", "build.gradle", "gradle.build", ".gradle"),
    "javascript": (".js", ".jsx", "package.json", "npm", "node"),
    "typescript": (".ts", ".tsx", "tsconfig.json"),
    "python": (".py", ".pyx", "requirements.txt", "setup.py", "pipfile"),
    "csharp": (".cs", ".csproj", ".sln", ".net"),
    "c++": (".cpp", ".hpp", ".cc", ".cxx"),
    "c": (".c", ".h"),
    "go": (".go", "go.mod", "go.sum"),
    "rust": (".rs", "cargo.toml", "cargo.lock"),
    "php": (".php", "composer.json"),
    "ruby": (".rb", "gemfile"),
    "swift": (".swift",),
    "kotlin": (".kt", ".kts"),
}

_JS_KEYWORDS = ("function ", "const ", "let ", "var ", "export ", "import ")

# Language name -> content snippets characteristic of its source files.
LANGUAGE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "java": ("public class", "package ", "import ", "public static void main"),
    "javascript": _JS_KEYWORDS,
    "typescript": _JS_KEYWORDS,
    "python": ("def ", "class ", "import ", "from ", "if __name__"),
}

MANIFEST_FILES = (
    "pom.xml",
    "build.gradle",
    "package.json",
    "tsconfig.json",
    "requirements.txt",
    "cargo.toml",
    "go.mod",
)

META_TERMS = ("written in", "language", "java", "python")


@dataclass
class ScoringConfig:
    """Point values for the heuristic scorer.

    Attributes:
        path_indicator_weight: Per language path indicator found in the file
            path, when the query names that language.
        manifest_weight: Per manifest/build file name found in the file path,
            when the query is a meta query.
        readme_weight: When the file path looks like a README and the query
            is a meta query.
        keyword_weights: Per content keyword found, by language. Languages
            absent here contribute no keyword points.
        widened_chunk_score: Neutral score given to chunks appended by the
            retriever's widening step rather than found by search.
        min_token_length: Query tokens shorter than this are ignored for
            lexical overlap.
    """

    path_indicator_weight: float = PATH_INDICATOR_WEIGHT
    manifest_weight: float = MANIFEST_WEIGHT
    readme_weight: float = README_WEIGHT
    keyword_weights: dict[str, float] = field(
        default_factory=lambda: {
            "java": STRONG_KEYWORD_WEIGHT,
            "javascript": WEAK_KEYWORD_WEIGHT,
            "typescript": WEAK_KEYWORD_WEIGHT,
            "python": STRONG_KEYWORD_WEIGHT,
        }
    )
    widened_chunk_score: float = WIDENED_CHUNK_SCORE
    min_token_length: int = MIN_TOKEN_LENGTH


class RelevanceScorer:
    """Deterministic keyword/heuristic relevance scoring.

    Example:
        >>> scorer = RelevanceScorer()
        >>> scorer.score("what language is this written in?", go_mod_chunk)
        15.0
        >>> ranked = scorer.rank("parse config", chunks, limit=5)
    """

    def __init__(self, config: ScoringConfig | None = None):
        """Initialize scorer with configuration.

        Args:
            config: Scoring configuration. Uses defaults if None.
        """
        self.config = config or ScoringConfig()

    def score(self, query: str, chunk: Chunk) -> float:
        """Total relevance of chunk for query, always >= 0."""
        return self.breakdown(query, chunk)["total"]

    def breakdown(self, query: str, chunk: Chunk) -> dict[str, float]:
        """Score split into its three signals.

        Returns:
            Dict with keys 'lexical', 'language', 'file_type', 'total'.
        """
        query_lower = query.lower()
        content = chunk.content.lower()
        path = chunk.file_path.lower()

        lexical = self.lexical_score(query_lower, content)
        language = self.language_score(query_lower, path, content)
        file_type = self.file_type_score(query_lower, path)

        return {
            "lexical": lexical,
            "language": language,
            "file_type": file_type,
            "total": lexical + language + file_type,
        }

    def lexical_score(self, query: str, content: str) -> float:
        """Occurrences of each query token in content (literal substring)."""
        score = 0.0
        for token in query.lower().split():
            if len(token) < self.config.min_token_length:
                continue
            score += len(re.findall(re.escape(token), content.lower()))
        return score

    def language_score(self, query: str, file_path: str, content: str) -> float:
        """Boost for files and code of languages named in the query."""
        file_path = file_path.lower()
        content = content.lower()
        score = 0.0

        for lang in self.languages_in(query):
            for indicator in LANGUAGE_INDICATORS[lang]:
                if indicator in file_path:
                    score += self.config.path_indicator_weight

            weight = self.config.keyword_weights.get(lang)
            if not weight:
                continue
            for keyword in LANGUAGE_KEYWORDS.get(lang, ()):
                if keyword in content:
                    score += weight

        return score

    def file_type_score(self, query: str, file_path: str) -> float:
        """Boost for manifests and READMEs when the query asks about languages."""
        if not self.is_meta_query(query):
            return 0.0

        file_path = file_path.lower()
        score = 0.0
        for manifest in MANIFEST_FILES:
            if manifest in file_path:
                score += self.config.manifest_weight
        if "readme" in file_path:
            score += self.config.readme_weight
        return score

    def languages_in(self, query: str) -> list[str]:
        """Language names contained (as substrings) in the query.

        Substring matching is deliberately loose: "go ahead" names Go and
        most queries contain "c". Both are accepted trade-offs of the
        heuristic.
        """
        query = query.lower()
        return [lang for lang in LANGUAGE_INDICATORS if lang in query]

    def is_meta_query(self, query: str) -> bool:
        """Whether the query asks what languages/technologies are used."""
        query = query.lower()
        return any(term in query for term in META_TERMS)

    def matches_language_file(self, query: str, file_path: str) -> bool:
        """Manifest, README, or an extension of a language named in the query."""
        path = file_path.lower()
        if any(manifest in path for manifest in MANIFEST_FILES) or "readme" in path:
            return True
        return any(
            indicator in path
            for lang in self.languages_in(query)
            for indicator in LANGUAGE_INDICATORS[lang]
        )

    def rank(
        self,
        query: str,
        chunks: Iterable[Chunk],
        limit: Optional[int] = None,
    ) -> list[RetrievedChunk]:
        """Score, drop non-positive, and order chunks by descending score.

        The sort is stable, so equal scores keep the input (insertion) order.

        Args:
            query: Query text.
            chunks: Candidates in insertion order.
            limit: Maximum results; all positive results if None.

        Returns:
            RetrievedChunks sorted by descending score.
        """
        scored = []
        for chunk in chunks:
            value = self.score(query, chunk)
            if value > 0:
                logger.debug("score %.1f for %s", value, chunk.id)
                scored.append(RetrievedChunk(chunk=chunk, score=value))

        ranked = sorted(scored, key=lambda rc: -rc.score)
        return ranked if limit is None else ranked[:limit]
