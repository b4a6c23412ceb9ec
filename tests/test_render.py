from pathlib import Path

import pytest

from weaving.document import Document
from weaving.errors import FileIOError, RenderError, TemplateError
from weaving.graph import SectionIndex, build_snapshot
from weaving.render import DirectoryCopy, RenderPipeline, WritableFile, output_path_for
from weaving.templates import TemplateEngine, TemplateSource


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def make_pipeline(tmp_path, documents, templates):
    engine = TemplateEngine(
        [
            TemplateSource(name=name, path=tmp_path / name, source=text)
            for name, text in templates.items()
        ]
    )
    index = SectionIndex(build_snapshot(documents))
    return RenderPipeline(
        build_dir=tmp_path / "site",
        engine=engine,
        index=index,
        site_config={"title": "Site"},
        extra_css=".highlight{}",
    )


def test_output_path_for():
    assert output_path_for(Path("/out"), "/") == Path("/out/index.html")
    assert output_path_for(Path("/out"), "/a/b/") == Path("/out/a/b/index.html")


def test_render_runs_body_pass_markdown_and_wrap(tmp_path):
    content = tmp_path / "content"
    page = Document.from_path(
        content,
        write(
            content / "posts" / "hello.md",
            "---\ntitle: Hello\n---\n# {{ page.title }}\n\nFrom {{ site_config.title }}\n",
        ),
    )
    other = Document.from_path(
        content, write(content / "posts" / "other.md", "---\ntitle: Other\n---\n")
    )
    pipeline = make_pipeline(
        tmp_path,
        [page, other],
        {
            "default.jinja": (
                "<title>{{ page.title }}</title>"
                "<style>{{ extra_css }}</style>"
                "{% for p in content.posts %}[{{ p.title }}]{% endfor %}"
                "<main>{{ page.body }}</main>"
            )
        },
    )

    output = pipeline.render(page)

    assert output.path == tmp_path / "site" / "posts" / "hello" / "index.html"
    assert output.emit is True
    assert "<title>Hello</title>" in output.contents
    assert "<style>.highlight{}</style>" in output.contents
    assert "[Other]" in output.contents
    assert "[Hello]" not in output.contents
    assert 'id="hello"' in output.contents
    assert "<p>From Site</p>" in output.contents


def test_emit_false_still_renders(tmp_path):
    content = tmp_path / "content"
    hidden = Document.from_path(
        content, write(content / "hidden.md", "---\nemit: false\n---\nSecret\n")
    )
    pipeline = make_pipeline(tmp_path, [hidden], {"default.jinja": "{{ page.body }}"})
    output = pipeline.render(hidden)
    assert output.emit is False
    assert "<p>Secret</p>" in output.contents


def test_missing_template_is_template_error(tmp_path):
    content = tmp_path / "content"
    page = Document.from_path(
        content, write(content / "a.md", "---\ntemplate: fancy\n---\nx\n")
    )
    pipeline = make_pipeline(tmp_path, [page], {"default.jinja": ""})
    with pytest.raises(TemplateError) as excinfo:
        pipeline.render(page)
    assert excinfo.value.source_path == page.path


def test_body_failure_is_render_error(tmp_path):
    content = tmp_path / "content"
    page = Document.from_path(content, write(content / "a.md", "{% if %}\n"))
    pipeline = make_pipeline(tmp_path, [page], {"default.jinja": "{{ page.body }}"})
    with pytest.raises(RenderError):
        pipeline.render(page)


def test_writable_file_creates_parents(tmp_path):
    target = tmp_path / "deep" / "er" / "index.html"
    output = WritableFile(path=target, contents="<p>x</p>")
    output.write()
    assert target.read_text(encoding="utf-8") == "<p>x</p>"
    assert list(output.target_paths()) == [target]


def test_writable_file_failure_is_io_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    with pytest.raises(FileIOError):
        WritableFile(path=blocker / "index.html", contents="x").write()


def test_directory_copy_merges_tree(tmp_path):
    source = tmp_path / "public"
    write(source / "css" / "main.css", "body{}")
    write(source / "robots.txt", "ok")
    destination = tmp_path / "site" / "public"
    write(destination / "existing.txt", "kept")

    copy = DirectoryCopy(source=source, destination=destination)
    copy.write()

    assert (destination / "css" / "main.css").read_text(encoding="utf-8") == "body{}"
    assert (destination / "existing.txt").exists()
    assert sorted(copy.target_paths()) == [
        destination / "css" / "main.css",
        destination / "robots.txt",
    ]
