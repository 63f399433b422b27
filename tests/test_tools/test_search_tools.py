from pathlib import Path

import pytest

from termpilot.tools.glob import NO_FILES_FOUND, GlobInput, GlobTool
from termpilot.tools.grep import NO_MATCHES_FOUND, GrepInput, GrepTool, compile_search_pattern
from termpilot.tools.read import ReadInput, ReadTool


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src" / "pkg").mkdir(parents=True)
    (tmp_path / "src" / "pkg" / "core.py").write_text("def main():\n    return 1\n", encoding="utf-8")
    (tmp_path / "src" / "util.py").write_text("import os\n# TODO: tidy\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("# Project\nmain entry\n", encoding="utf-8")
    (tmp_path / "blob.bin").write_bytes(b"main\x00\x01\x02")
    return tmp_path


@pytest.mark.asyncio
async def test_glob_recursive_pattern_is_sorted_and_relative(project: Path):
    tool = GlobTool(project)
    result = await tool.execute(GlobInput(pattern="**/*.py"))

    assert result.is_error is False
    assert result.content.splitlines() == ["src/pkg/core.py", "src/util.py"]


@pytest.mark.asyncio
async def test_glob_no_match(project: Path):
    tool = GlobTool(project)
    result = await tool.execute(GlobInput(pattern="*.rs"))

    assert result.is_error is False
    assert result.content == NO_FILES_FOUND


@pytest.mark.asyncio
async def test_glob_absolute_pattern_under_work_dir_is_relativized(project: Path):
    tool = GlobTool(project)
    result = await tool.execute(GlobInput(pattern=str(project / "*.md")))

    assert result.content == "README.md"


@pytest.mark.asyncio
async def test_grep_reports_path_line_and_text(project: Path):
    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern=r"def \w+"))

    assert result.content == "src/pkg/core.py:1:def main():\n"


@pytest.mark.asyncio
async def test_grep_skips_binary_files(project: Path):
    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern="main"))

    lines = result.content.splitlines()
    assert "README.md:2:main entry" in lines
    assert "src/pkg/core.py:1:def main():" in lines
    assert not any(line.startswith("blob.bin") for line in lines)


@pytest.mark.asyncio
async def test_grep_include_filter_and_path(project: Path):
    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern="import", path="src", include="*.py"))

    assert result.content == "src/util.py:1:import os\n"


@pytest.mark.asyncio
async def test_grep_invalid_regex_falls_back_to_literal(project: Path):
    (project / "weird.txt").write_text("call foo(\n", encoding="utf-8")

    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern="foo("))

    assert result.content == "weird.txt:1:call foo(\n"
    assert compile_search_pattern("a(").pattern == r"a\("


@pytest.mark.asyncio
async def test_grep_no_matches(project: Path):
    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern="nothing-here"))

    assert result.is_error is False
    assert result.content == NO_MATCHES_FOUND


@pytest.mark.asyncio
async def test_grep_missing_root_is_error(project: Path):
    tool = GrepTool(project)
    result = await tool.execute(GrepInput(pattern="x", path="missing"))

    assert result.is_error is True
    assert result.content == "Path not found: missing"


@pytest.mark.asyncio
async def test_grep_line_numbers_match_read_numbering(tmp_path: Path):
    (tmp_path / "f.txt").write_text("a\x0cb\rc\nfoo\n", encoding="utf-8")

    grep = await GrepTool(tmp_path).execute(GrepInput(pattern="foo"))
    read = await ReadTool(tmp_path).execute(ReadInput(file_path="f.txt", offset=2, limit=1))

    assert grep.content == "f.txt:2:foo\n"
    assert read.content == "    2│foo\n"
