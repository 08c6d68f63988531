"""Tests for FileOps: workspace confinement, writes, edits and blueprints."""

import pytest

from devagent.tools.file_ops import (
    MAX_BULK_READ,
    FileOperationError,
    FileOps,
    looks_like_placeholder,
    parse_blueprint,
)


@pytest.fixture
def ops(tmp_path):
    return FileOps(str(tmp_path))


class TestConfinement:

    def test_parent_escape_denied(self, ops):
        with pytest.raises(FileOperationError, match="Access denied"):
            ops.read_file("../secret.txt")

    def test_absolute_outside_denied(self, ops, tmp_path):
        outside = tmp_path.parent / "elsewhere.txt"
        with pytest.raises(FileOperationError, match="outside workspace"):
            ops.write_file(str(outside), "hello world")
        assert not outside.exists()

    def test_absolute_inside_allowed(self, ops, tmp_path):
        ops.write_file(str(tmp_path / "inside.txt"), "hello world")
        assert (tmp_path / "inside.txt").exists()


class TestReadWrite:

    def test_write_creates_parents(self, ops, tmp_path):
        result = ops.write_file("src/lib/util.js", "export const x = 1;")
        assert result["success"] is True
        assert result["bytes"] == len("export const x = 1;")
        assert (tmp_path / "src" / "lib" / "util.js").exists()

    def test_read_back(self, ops):
        ops.write_file("notes.txt", "hello world")
        result = ops.read_file("notes.txt")
        assert result["content"] == "hello world"
        assert result["bytes"] == 11

    def test_missing_file(self, ops):
        with pytest.raises(FileOperationError, match="File not found"):
            ops.read_file("nope.txt")

    def test_read_directory(self, ops, tmp_path):
        (tmp_path / "src").mkdir()
        with pytest.raises(FileOperationError, match="directory"):
            ops.read_file("src")

    def test_write_over_directory(self, ops, tmp_path):
        (tmp_path / "src").mkdir()
        with pytest.raises(FileOperationError, match="is a directory"):
            ops.write_file("src", "hello world")

    def test_binary_file(self, ops, tmp_path):
        (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe\x00")
        with pytest.raises(FileOperationError, match="binary"):
            ops.read_file("logo.png")

    @pytest.mark.parametrize("content", ["", "   ", "...", "/* */", "// ..."])
    def test_placeholder_rejected(self, ops, tmp_path, content):
        with pytest.raises(FileOperationError, match="placeholders"):
            ops.write_file("a.js", content)
        assert not (tmp_path / "a.js").exists()

    def test_short_real_content_allowed(self):
        assert not looks_like_placeholder("x = 1")
        assert looks_like_placeholder("...")


class TestListing:

    def test_tree_and_flat_list(self, ops, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.js").write_text("console.log(1)")
        (tmp_path / "README.md").write_text("# hi")
        result = ops.list_files(".")
        assert sorted(result["files_list"]) == ["README.md", "src/app.js"]
        assert result["items"][0]["type"] == "directory"
        assert result["items"][0]["children"][0]["path"] == "src/app.js"

    def test_skips_noise_dirs(self, ops, tmp_path):
        for noisy in ("node_modules", ".git", ".devagent"):
            (tmp_path / noisy).mkdir()
            (tmp_path / noisy / "x.txt").write_text("x")
        (tmp_path / "keep.txt").write_text("x")
        assert ops.list_files(".")["files_list"] == ["keep.txt"]

    def test_missing_directory(self, ops):
        with pytest.raises(FileOperationError, match="Directory not found"):
            ops.list_files("nowhere")

    def test_file_is_not_directory(self, ops, tmp_path):
        (tmp_path / "a.txt").write_text("x")
        with pytest.raises(FileOperationError, match="Not a directory"):
            ops.list_files("a.txt")


class TestBulk:

    def test_bulk_read_mixed(self, ops, tmp_path):
        (tmp_path / "a.txt").write_text("A")
        result = ops.bulk_read(["a.txt", "missing.txt"])
        assert result["results"][0] == {"path": "a.txt", "content": "A", "success": True}
        assert "File not found" in result["results"][1]["error"]

    def test_bulk_read_capped(self, ops, tmp_path):
        paths = []
        for i in range(MAX_BULK_READ + 5):
            (tmp_path / f"f{i}.txt").write_text(str(i))
            paths.append(f"f{i}.txt")
        assert len(ops.bulk_read(paths)["results"]) == MAX_BULK_READ

    def test_bulk_write_partial_failure(self, ops, tmp_path):
        result = ops.bulk_write([
            {"path": "ok.txt", "content": "hello world"},
            {"path": "stub.txt", "content": "..."},
            {"path": None, "content": "hello world"},
        ])
        assert result["success"] is True
        assert result["results"][0]["success"] is True
        assert "placeholders" in result["results"][1]["error"]
        assert result["results"][2]["path"] == "unknown"
        assert (tmp_path / "ok.txt").exists()
        assert not (tmp_path / "stub.txt").exists()

    def test_bulk_write_all_failed(self, ops):
        assert ops.bulk_write([{"path": "a.txt", "content": ""}])["success"] is False


class TestReplaceInFile:

    def test_exact_replace(self, ops, tmp_path):
        (tmp_path / "app.js").write_text("const a = 1;\nconst b = 2;\n")
        ops.replace_in_file("app.js", "const b = 2;", "const b = 3;")
        assert (tmp_path / "app.js").read_text() == "const a = 1;\nconst b = 3;\n"

    def test_trailing_whitespace_tolerated(self, ops, tmp_path):
        (tmp_path / "app.py").write_text("a = 1   \nb = 2\n")
        ops.replace_in_file("app.py", "a = 1\nb = 2", "x = 1\ny = 2")
        assert (tmp_path / "app.py").read_text() == "x = 1\ny = 2\n"

    def test_not_found_shows_file_start(self, ops, tmp_path):
        (tmp_path / "app.js").write_text("const a = 1;\n")
        with pytest.raises(FileOperationError, match="not found") as exc:
            ops.replace_in_file("app.js", "const z = 9;", "x")
        assert "const a = 1;" in str(exc.value)

    def test_multiple_matches(self, ops, tmp_path):
        (tmp_path / "app.js").write_text("x();\nx();\n")
        with pytest.raises(FileOperationError, match="multiple locations"):
            ops.replace_in_file("app.js", "x();", "y();")

    def test_empty_search(self, ops, tmp_path):
        (tmp_path / "app.js").write_text("x();\n")
        with pytest.raises(FileOperationError, match="search block is empty"):
            ops.replace_in_file("app.js", "  \n", "y();")

    def test_emptying_file_rejected(self, ops, tmp_path):
        (tmp_path / "app.js").write_text("only line")
        with pytest.raises(FileOperationError, match="empty file"):
            ops.replace_in_file("app.js", "only line", "")
        assert (tmp_path / "app.js").read_text() == "only line"


class TestBlueprint:

    def test_heading_paths(self):
        content = (
            "# Plan\n\n"
            "## src/index.js\n```js\nconsole.log('hi');\n```\n\n"
            "### styles/main.css\n```css\nbody { margin: 0; }\n```\n"
        )
        files = parse_blueprint(content)
        assert [f["path"] for f in files] == ["src/index.js", "styles/main.css"]
        assert files[0]["content"] == "console.log('hi');"

    def test_path_in_leading_comment(self):
        content = "```python\n# app/main.py\nprint('hi')\n```\n"
        files = parse_blueprint(content)
        assert files[0]["path"] == "app/main.py"

    def test_block_without_path_skipped(self):
        assert parse_blueprint("Some text\n```\nno path here\n```\n") == []

    def test_empty_block_skipped(self):
        assert parse_blueprint("## a.txt\n```\n\n```\n") == []

    def test_apply_blueprint_writes_files(self, ops, tmp_path):
        result = ops.apply_blueprint("## web/index.html\n```html\n<h1>Hello there</h1>\n```\n")
        assert result["success"] is True
        assert (tmp_path / "web" / "index.html").read_text() == "<h1>Hello there</h1>"

    def test_apply_blueprint_without_files(self, ops):
        with pytest.raises(FileOperationError, match="No files found"):
            ops.apply_blueprint("just prose")
