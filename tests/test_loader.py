"""Tests for corpus identity and the local repository loader."""

import pytest

from repochat.core.errors import InvalidInputError
from repochat.core.loader import (
    LocalRepoLoader,
    corpus_id_for,
    is_github_url,
    is_text_file,
    parse_github_url,
)


class TestCorpusIds:
    """Tests for corpus_id_for and GitHub URL parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/gotool",
            "https://github.com/Acme/GoTool",
            "https://github.com/acme/gotool.git",
            "https://www.github.com/acme/gotool/tree/main/cmd",
            "github.com/acme/gotool",
            "git@github.com:acme/gotool.git",
        ],
    )
    def test_github_forms_share_one_id(self, url):
        """Test that every spelling of a repository maps to one corpus."""
        assert corpus_id_for(url) == "github-acme-gotool"

    def test_parse_github_url(self):
        """Test owner and repo extraction."""
        assert parse_github_url("https://github.com/acme/gotool.git") == ("acme", "gotool")

    def test_parse_rejects_other_hosts(self):
        """Test that non-GitHub URLs are invalid."""
        with pytest.raises(InvalidInputError):
            parse_github_url("https://gitlab.com/acme/gotool")

    def test_gopath_is_not_a_url(self):
        """Test that a local path containing github.com stays local."""
        path = "/home/dev/go/src/github.com/acme/gotool"

        assert not is_github_url(path)
        assert corpus_id_for(path).startswith("local-gotool-")

    def test_local_ids_stable(self, tmp_path):
        """Test that a path and its trailing-slash form agree."""
        repo = tmp_path / "My Repo"
        repo.mkdir()

        first = corpus_id_for(str(repo))
        second = corpus_id_for(str(repo) + "/")
        assert first == second
        assert first.startswith("local-my-repo-")

    def test_local_ids_differ_by_location(self, tmp_path):
        """Test that two checkouts with one name get distinct ids."""
        (tmp_path / "a" / "tool").mkdir(parents=True)
        (tmp_path / "b" / "tool").mkdir(parents=True)

        assert corpus_id_for(str(tmp_path / "a" / "tool")) != corpus_id_for(str(tmp_path / "b" / "tool"))

    @pytest.mark.parametrize("descriptor", ["", "  ", "s3://bucket/repo", "https://example.com/x/y"])
    def test_invalid_descriptors(self, descriptor):
        """Test that blank and unsupported descriptors are rejected."""
        with pytest.raises(InvalidInputError):
            corpus_id_for(descriptor)


class TestTextFilter:
    """Tests for is_text_file."""

    @pytest.mark.parametrize("path", ["main.go", "go.mod", "Makefile", "README", "src/App.TSX", "pom.xml"])
    def test_text_files(self, path):
        assert is_text_file(path)

    @pytest.mark.parametrize("path", ["logo.png", "app.exe", "archive.tar.gz", "LICENSE"])
    def test_binary_files(self, path):
        assert not is_text_file(path)


class TestLocalRepoLoader:
    """Tests for LocalRepoLoader."""

    def test_load_checkout(self, go_checkout):
        """Test that text files load in sorted order and ignored dirs are skipped."""
        source = LocalRepoLoader().load(str(go_checkout))

        assert source.file_tree() == ["README.md", "go.mod", "main.go"]
        assert source.readme.startswith("# gotool")
        assert source.name == "gotool"

    def test_nested_paths_use_forward_slashes(self, go_checkout):
        """Test repository-relative posix paths for nested files."""
        (go_checkout / "cmd" / "server").mkdir(parents=True)
        (go_checkout / "cmd" / "server" / "main.go").write_text("package main\n")

        source = LocalRepoLoader().load(str(go_checkout))
        assert "cmd/server/main.go" in source.file_tree()

    def test_skips_invalid_utf8(self, go_checkout):
        """Test that undecodable files are skipped, not fatal."""
        (go_checkout / "latin1.txt").write_bytes("caf\xe9".encode("latin-1"))

        source = LocalRepoLoader().load(str(go_checkout))
        assert "latin1.txt" not in source.file_tree()
        assert "main.go" in source.file_tree()

    def test_skips_large_files(self, go_checkout):
        """Test the size limit."""
        (go_checkout / "big.txt").write_text("x" * 200)

        source = LocalRepoLoader(max_file_bytes=100).load(str(go_checkout))
        assert "big.txt" not in source.file_tree()
        assert "go.mod" in source.file_tree()

    def test_nested_readme_is_not_root_readme(self, tmp_path):
        """Test that only a top-level README counts."""
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "README.md").write_text("docs readme")
        (tmp_path / "main.py").write_text("print('hi')\n")

        assert LocalRepoLoader().load(str(tmp_path)).readme is None

    def test_rejects_missing_directory(self, tmp_path):
        """Test that a missing path is invalid input."""
        with pytest.raises(InvalidInputError):
            LocalRepoLoader().load(str(tmp_path / "missing"))

    def test_rejects_urls(self):
        """Test that the local loader does not fetch URLs."""
        with pytest.raises(InvalidInputError):
            LocalRepoLoader().load("https://github.com/acme/gotool")
