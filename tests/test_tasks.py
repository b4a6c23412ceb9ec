from datetime import datetime, timedelta, timezone
from pathlib import Path

from weaving.config import WeaverConfig
from weaving.document import Document, Metadata
from weaving.graph import build_snapshot
from weaving.protocols import SiteTask, WritableOutput
from weaving.render import DirectoryCopy
from weaving.tasks import (
    AtomFeedTask,
    PublicCopyTask,
    SitemapTask,
    WellKnownCopyTask,
    default_tasks,
    sweep_stale_outputs,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_config(tmp_path: Path, **overrides) -> WeaverConfig:
    config = WeaverConfig.for_base_dir(tmp_path)
    config.base_url = "example.com"
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def doc(config: WeaverConfig, relative: str, days=None, emit=True, **meta) -> Document:
    published = BASE + timedelta(days=days) if days is not None else None
    metadata = Metadata(
        title=meta.pop("title", relative),
        published=published,
        last_updated=meta.pop("last_updated", published),
        emit=emit,
        **meta,
    )
    return Document(
        path=config.content_dir / relative,
        content_root=config.content_dir,
        metadata=metadata,
        emit=emit,
    )


def write(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_default_tasks_satisfy_protocol():
    tasks = default_tasks()
    assert [task.name for task in tasks] == [
        "sitemap",
        "atom",
        "public-copy",
        "well-known-copy",
    ]
    assert all(isinstance(task, SiteTask) for task in tasks)


def test_sitemap_lists_emitted_pages(tmp_path):
    config = make_config(tmp_path)
    snapshot = build_snapshot(
        [
            doc(config, "index.md", 0),
            doc(config, "posts/a.md", 3, last_updated=BASE + timedelta(days=40)),
            doc(config, "drafts/hidden.md", 1, emit=False),
            doc(config, "undated.md"),
        ]
    )

    output = SitemapTask().run(config, snapshot)

    assert isinstance(output, WritableOutput)
    assert output.path == config.build_dir / "sitemap.xml"
    xml = output.contents
    assert '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">' in xml
    assert "<loc>http://example.com/</loc>" in xml
    assert "<loc>http://example.com/posts/a/</loc>" in xml
    assert "<lastmod>2024-02-10</lastmod>" in xml
    assert "<loc>http://example.com/undated/</loc>" in xml
    assert "hidden" not in xml


def test_atom_feed_entries(tmp_path):
    config = make_config(tmp_path, title="Fish & Chips", author="Ada")
    snapshot = build_snapshot(
        [
            doc(config, "index.md", 50),
            doc(config, "posts/index.md", 60),
            doc(config, "posts/old.md", 1, description="Old one"),
            doc(config, "posts/new.md", 10, excerpt="Newest <b>post</b>"),
            doc(config, "posts/secret.md", 20, emit=False),
        ]
    )

    xml = AtomFeedTask().run(config, snapshot).contents

    assert "<title>Fish &amp; Chips</title>" in xml
    assert "<name>Ada</name>" in xml
    assert '<link href="http://example.com/atom.xml" rel="self"/>' in xml
    assert xml.index("/posts/new/") < xml.index("/posts/old/")
    assert "<summary>Newest &lt;b&gt;post&lt;/b&gt;</summary>" in xml
    assert "<summary>Old one</summary>" in xml
    assert "secret" not in xml
    assert "<id>http://example.com/</id>" in xml
    assert "<id>http://example.com/posts/</id>" not in xml
    assert xml.count("<entry>") == 2
    assert f"<updated>{(BASE + timedelta(days=10)).isoformat()}</updated>" in xml


def test_atom_feed_respects_limit(tmp_path):
    config = make_config(tmp_path, feed_limit=2)
    snapshot = build_snapshot(
        [doc(config, f"posts/p{day}.md", day) for day in range(5)]
    )
    xml = AtomFeedTask().run(config, snapshot).contents
    assert xml.count("<entry>") == 2
    assert "/posts/p4/" in xml
    assert "/posts/p3/" in xml
    assert "/posts/p0/" not in xml


def test_atom_feed_without_dates_still_renders(tmp_path):
    config = make_config(tmp_path)
    snapshot = build_snapshot([doc(config, "note.md")])
    xml = AtomFeedTask().run(config, snapshot).contents
    assert xml.count("<entry>") == 1
    assert "<published>" not in xml
    assert "<updated>" in xml


def test_copy_tasks_skip_missing_directories(tmp_path):
    config = make_config(tmp_path)
    assert PublicCopyTask().run(config, {}) is None
    assert WellKnownCopyTask().run(config, {}) is None


def test_copy_tasks_target_build_dir(tmp_path):
    config = make_config(tmp_path)
    write(config.public_dir / "style.css")
    write(config.well_known_dir / "security.txt")

    public = PublicCopyTask().run(config, {})
    well_known = WellKnownCopyTask().run(config, {})

    assert public == DirectoryCopy(
        source=config.public_dir, destination=config.build_dir / "public"
    )
    assert well_known == DirectoryCopy(
        source=config.well_known_dir, destination=config.build_dir / ".well-known"
    )


def test_sweep_removes_only_unproduced_files(tmp_path):
    config = make_config(tmp_path)
    build = config.build_dir
    kept = write(build / "about" / "index.html")
    stale = write(build / "old" / "page" / "index.html")
    public_file = write(build / "public" / "style.css")
    well_known = write(build / ".well-known" / "security.txt")
    sitemap = write(build / "sitemap.xml")
    atom = write(build / "atom.xml")

    removed = sweep_stale_outputs(config, [kept])

    assert removed == [stale]
    assert not (build / "old").exists()
    for path in (kept, public_file, well_known, sitemap, atom):
        assert path.exists()


def test_sweep_without_build_dir_is_noop(tmp_path):
    config = make_config(tmp_path)
    assert sweep_stale_outputs(config, []) == []
