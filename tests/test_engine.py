# File: tests/test_engine.py
# End-to-end tests for the document test orchestrator
from __future__ import annotations

import asyncio
import json
import threading
import time
from collections import Counter
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web

from html_scout.engine import CACHE_UNREADABLE_WARNING, CONCURRENT_MODE_WARNING, HTMLAudit
from html_scout.issues import IssueLevel
from html_scout.output import AuditAborted
from html_scout.parser import html_parser

from helpers import page, serve_app, write_site


def messages(audit: HTMLAudit) -> list[str]:
    return [i.message for i in audit.issue_store.issues]


def issue_multiset(audit: HTMLAudit) -> Counter:
    return Counter(
        (i.level, i.message, i.document, i.reference, i.node)
        for i in audit.issue_store.issues
        if i.message != CONCURRENT_MODE_WARNING
    )


# --------------------------------------------------------------------------- #
#                               Test servers                                  #
# --------------------------------------------------------------------------- #


@pytest_asyncio.fixture
async def counting_server(unused_tcp_port: int) -> AsyncIterator[tuple[str, dict]]:
    """/ok → 200, /missing → 404, /slow → 200 after a delay; hits are counted per path."""
    app = web.Application()
    hits: dict[str, int] = {}

    def counted(status: int, delay: float = 0.0):
        async def handler(request: web.Request) -> web.Response:
            hits[request.path] = hits.get(request.path, 0) + 1
            if delay:
                await asyncio.sleep(delay)
            return web.Response(status=status, text="<h1>x</h1>", content_type="text/html")

        return handler

    app.router.add_get("/ok", counted(200))
    app.router.add_get("/missing", counted(404))
    app.router.add_get("/slow", counted(200, delay=0.2))

    async for url in serve_app(app, unused_tcp_port):
        yield url, hits


# --------------------------------------------------------------------------- #
#                                Scenarios                                    #
# --------------------------------------------------------------------------- #


def test_scenario_a_broken_local_links(site_root, make_options):
    body = '<a href="nothing-here.html">one</a><a href="nothing-here.html">two</a>'
    write_site(site_root, {f"doc{i}.html": page(body) for i in range(3)})

    audit = HTMLAudit(make_options(check_favicon=False, check_doctype=False))
    audit.start_audit()

    assert audit.count_documents() == 3
    assert audit.count_errors() == 6
    assert set(messages(audit)) == {"target does not exist"}
    # one filesystem probe for the shared target
    assert audit.ctx.fetcher.path_probes == 1


@pytest.mark.asyncio()
async def test_scenario_b_single_probe_for_unreachable_url(site_root, make_options, unused_tcp_port_factory):
    dead = f"http://localhost:{unused_tcp_port_factory()}/gone"
    write_site(site_root, {name: page(f'<a href="{dead}">dead</a>') for name in ("a.html", "b.html")})

    audit = HTMLAudit(
        make_options(
            check_external=True,
            test_files_concurrently=True,
            http_concurrency_limit=1,
            document_concurrency_limit=2,
        )
    )
    await audit.run()

    assert audit.ctx.fetcher.url_probes == 1
    assert audit.count_errors() == 2
    broken = [i for i in audit.issue_store.issues if i.level is IssueLevel.ERROR]
    assert {i.document for i in broken} == {"a.html", "b.html"}
    assert all(i.reference == dead for i in broken)


@pytest.mark.asyncio()
async def test_scenario_b_server_sees_one_request(site_root, make_options, counting_server):
    base, hits = counting_server
    write_site(
        site_root,
        {f"p{i}.html": page(f'<a href="{base}/missing">m</a><img src="{base}/ok" alt="">') for i in range(6)},
    )
    audit = HTMLAudit(
        make_options(
            check_external=True,
            test_files_concurrently=True,
            http_concurrency_limit=1,
            document_concurrency_limit=6,
        )
    )
    await audit.run()

    assert hits == {"/missing": 1, "/ok": 1}
    assert audit.count_errors() == 6
    assert {i.message for i in audit.issue_store.issues if i.level is IssueLevel.ERROR} == {
        "Non-OK status: 404"
    }


@pytest.mark.asyncio()
async def test_scenario_c_fresh_cache_entry_is_authoritative(site_root, make_options, unused_tcp_port_factory, tmp_path):
    dead = f"http://localhost:{unused_tcp_port_factory()}/cached"
    write_site(site_root, {"index.html": page(f'<a href="{dead}">cached</a>')})
    options = make_options(check_external=True, enable_cache=True, cache_expires="1h")
    options.cache_path.parent.mkdir(parents=True)
    options.cache_path.write_text(
        json.dumps({"version": 1, "entries": {dead: {"status": "valid", "detail": "200", "timestamp": time.time()}}}),
        encoding="utf-8",
    )

    audit = HTMLAudit(options)
    await audit.run()

    assert audit.count_errors() == 0
    assert audit.ctx.fetcher.url_probes == 0


@pytest.mark.asyncio()
async def test_expired_cache_entry_is_probed_again(site_root, make_options, unused_tcp_port_factory):
    dead = f"http://localhost:{unused_tcp_port_factory()}/stale"
    write_site(site_root, {"index.html": page(f'<a href="{dead}">stale</a>')})
    options = make_options(check_external=True, enable_cache=True, cache_expires="1h")
    options.cache_path.parent.mkdir(parents=True)
    stale = time.time() - 2 * 3600
    options.cache_path.write_text(
        json.dumps({"version": 1, "entries": {dead: {"status": "valid", "detail": "200", "timestamp": stale}}}),
        encoding="utf-8",
    )

    audit = HTMLAudit(options)
    await audit.run()

    assert audit.ctx.fetcher.url_probes == 1
    assert audit.count_errors() == 1
    # the fresh failure overwrote the stale entry on disk
    saved = json.loads(options.cache_path.read_text(encoding="utf-8"))["entries"][dead]
    assert saved["status"] == "error"
    assert saved["timestamp"] > stale


@pytest.mark.asyncio()
async def test_cache_persists_between_runs(site_root, make_options, counting_server):
    base, hits = counting_server
    write_site(site_root, {"index.html": page(f'<a href="{base}/ok">ok</a>')})
    options = make_options(check_external=True, enable_cache=True)

    await HTMLAudit(options).run()
    second = HTMLAudit(options)
    await second.run()

    assert hits == {"/ok": 1}
    assert second.count_errors() == 0


def test_corrupt_cache_adds_warning(site_root, make_options):
    write_site(site_root, {"index.html": page()})
    options = make_options(enable_cache=True)
    options.cache_path.parent.mkdir(parents=True)
    options.cache_path.write_text("{{{ not json", encoding="utf-8")

    audit = HTMLAudit(options)
    audit.start_audit()

    assert audit.count_errors() == 0
    assert audit.issue_store.count(IssueLevel.WARNING) == 1
    assert CACHE_UNREADABLE_WARNING in messages(audit)
    # the run rewrote a valid snapshot
    assert json.loads(options.cache_path.read_text(encoding="utf-8"))["entries"] == {}


# --------------------------------------------------------------------------- #
#                         Ordering & concurrency                              #
# --------------------------------------------------------------------------- #


def _messy_site(root):
    files = {}
    for i in range(8):
        files[f"section{i % 3}/page{i}.html"] = page(
            f'<a href="../missing{i % 2}.html">m</a>'
            f'<a href="#nowhere">h</a>'
            f'<img src="/img/absent{i}.png">'
            f'<a href="/section{i % 3}/page{i}.html#top">self</a>',
            doctype=i % 2 == 0,
        )
    files["index.html"] = page('<h1 id="top">Home</h1><a href="#top">ok</a>')
    return write_site(root, files)


@pytest.mark.parametrize("log_sort", ["document", "seq"])
def test_sequential_and_concurrent_modes_agree(site_root, make_options, log_sort):
    _messy_site(site_root)
    sequential = HTMLAudit(make_options(check_doctype=True, log_sort=log_sort))
    sequential.start_audit()
    concurrent = HTMLAudit(
        make_options(check_doctype=True, log_sort=log_sort, test_files_concurrently=True, document_concurrency_limit=4)
    )
    concurrent.start_audit()

    assert issue_multiset(sequential) == issue_multiset(concurrent)
    assert sequential.count_errors() == concurrent.count_errors() > 0
    assert messages(concurrent)[0] == CONCURRENT_MODE_WARNING
    assert concurrent.issue_store.count(IssueLevel.WARNING) == 1


@pytest.mark.parametrize("concurrent", [False, True])
def test_document_sort_keeps_documents_contiguous(site_root, make_options, concurrent):
    _messy_site(site_root)
    audit = HTMLAudit(
        make_options(log_sort="document", test_files_concurrently=concurrent, document_concurrency_limit=8)
    )
    audit.start_audit()

    docs = [i.document for i in audit.issue_store.issues if i.document is not None]
    seen: list[str] = []
    for doc in docs:
        if not seen or seen[-1] != doc:
            assert doc not in seen, f"{doc} issues are split"
            seen.append(doc)


def test_sequential_mode_is_deterministic(site_root, make_options):
    _messy_site(site_root)
    runs = []
    for _ in range(2):
        audit = HTMLAudit(make_options(log_sort="seq"))
        audit.start_audit()
        runs.append([(i.document, i.message, i.reference) for i in audit.issue_store.issues])
    assert runs[0] == runs[1]
    # discovery order: root files first, then sorted sub-directories
    assert runs[0][0][0] == "section0/page0.html"


@pytest.mark.asyncio()
async def test_document_pool_and_fetch_limiter_are_independent(site_root, make_options, counting_server):
    base, hits = counting_server
    write_site(site_root, {f"d{i}.html": page(f'<a href="{base}/slow?n={i}">s</a>') for i in range(6)})
    audit = HTMLAudit(
        make_options(
            check_external=True,
            test_files_concurrently=True,
            document_concurrency_limit=6,
            http_concurrency_limit=2,
        )
    )
    await audit.run()

    assert hits["/slow"] == 6
    assert audit.fetch_limiter.peak == 2
    assert audit.count_errors() == 0


# --------------------------------------------------------------------------- #
#                              Individual checks                              #
# --------------------------------------------------------------------------- #


def test_post_checks_favicon_and_doctype(site_root, make_options):
    write_site(
        site_root,
        {
            "with.html": page(head='<link rel="icon" href="/favicon.ico">'),
            "without.html": page(doctype=False),
            "favicon.ico": "icon",
        },
    )
    audit = HTMLAudit(make_options(check_favicon=True, check_doctype=True))
    audit.start_audit()

    found = {(i.document, i.message) for i in audit.issue_store.issues}
    assert found == {("without.html", "missing doctype"), ("without.html", "favicon missing")}


def test_enforce_html5(site_root, make_options):
    legacy = '<!DOCTYPE HTML PUBLIC "-//W3C//DTD HTML 4.01//EN"><html><body></body></html>'
    write_site(site_root, {"old.html": legacy, "new.html": page()})
    audit = HTMLAudit(make_options(check_doctype=True, enforce_html5=True))
    audit.start_audit()
    assert [(i.document, i.message) for i in audit.issue_store.issues] == [("old.html", "doctype isn't html5")]


def test_internal_references(site_root, make_options):
    write_site(
        site_root,
        {
            "index.html": page(
                '<a href="docs/">dir with index</a>'
                '<a href="empty/">dir without index</a>'
                '<a href="docs/guide.html#install">good hash</a>'
                '<a href="docs/guide.html#nope">bad hash</a>'
                '<a href="#">empty hash</a>'
                '<a href="#here">same page</a><span id="here"></span>'
                '<a>named anchor only</a>'
                '<a href="">blank</a>'
                '<a href="missing.html" data-proofer-ignore>ignored</a>'
                '<link rel="stylesheet" href="/css/site.css">'
                '<script src="/js/app.js"></script><script>inline()</script>'
                '<video src="/media/clip.mp4" poster="/media/poster.png"></video>'
            ),
            "docs/index.html": page(),
            "docs/guide.html": page('<h2 id="install">Install</h2>'),
            "css/site.css": "body{}",
            "js/app.js": "",
            "media/clip.mp4": "",
            "empty/readme.txt": "",
        },
    )
    audit = HTMLAudit(make_options())
    audit.start_audit()

    found = sorted((i.message, i.reference) for i in audit.issue_store.issues)
    assert found == sorted(
        [
            ("target is a directory without index.html", "empty/"),
            ("hash does not exist", "docs/guide.html#nope"),
            ("empty hash", "#"),
            ("href blank", ""),
            ("target does not exist", "/media/poster.png"),
        ]
    )


def test_issue_names_document_node_and_reference(site_root, make_options):
    write_site(site_root, {"a.html": page('\n\n<img src="ghost.png" alt="ghost">')})
    audit = HTMLAudit(make_options())
    audit.start_audit()

    (issue,) = audit.issue_store.issues
    assert issue.document == "a.html"
    assert issue.reference == "ghost.png"
    assert issue.node.startswith("<img> on line ")
    assert "a.html" in issue.full_text() and "ghost.png" in issue.full_text()


def test_image_checks(site_root, make_options):
    write_site(
        site_root,
        {
            "a.html": page('<img src="/ok.png"><img alt="no src"><img srcset="x.png 2x" alt="">'),
            "ok.png": "",
        },
    )
    audit = HTMLAudit(make_options())
    audit.start_audit()
    assert sorted(messages(audit)) == ["alt attribute missing", "src attribute missing"]

    relaxed = HTMLAudit(make_options(ignore_alt_missing=True, check_images=True))
    relaxed.start_audit()
    assert messages(relaxed) == ["src attribute missing"]


def test_disabled_categories_are_skipped(site_root, make_options):
    write_site(site_root, {"a.html": page('<a href="x.html">x</a><img src="y.png"><iframe src="z.html"></iframe>')})
    audit = HTMLAudit(make_options(check_anchors=False, check_images=False, check_generic=False))
    audit.start_audit()
    assert audit.count_errors() == 0


def test_mailto_tel_and_meta_refresh(site_root, make_options):
    write_site(
        site_root,
        {
            "a.html": page(
                '<a href="mailto:">m1</a><a href="mailto:not-an-address">m2</a>'
                '<a href="mailto:team@example.com?subject=hi">m3</a>'
                '<a href="tel:">t1</a><a href="tel:+123">t2</a>'
                '<a href="javascript:void(0)">js</a>',
                head=(
                    '<meta http-equiv="refresh" content="0; url=moved.html">'
                    '<meta http-equiv="refresh">'
                    '<meta name="description" content="not a url">'
                ),
            )
        },
    )
    audit = HTMLAudit(make_options())
    audit.start_audit()
    assert sorted(messages(audit)) == sorted(
        [
            "mailto is empty",
            "contains an invalid email address",
            "tel is empty",
            "target does not exist",
            "missing content attribute in meta refresh",
        ]
    )
    refresh = [i for i in audit.issue_store.issues if i.message == "target does not exist"]
    assert refresh[0].reference == "moved.html"


def test_ignore_urls_and_empty_options(site_root, make_options):
    write_site(site_root, {"a.html": page('<a href="/private/x.html">p</a><a href="#">e</a><a href="">b</a>')})
    audit = HTMLAudit(
        make_options(ignore_urls=[r"^/private/"], ignore_internal_empty_hash=True, ignore_empty_href=True)
    )
    audit.start_audit()
    assert audit.count_errors() == 0


@pytest.mark.asyncio()
async def test_enforce_https_and_skip_external(site_root, make_options):
    write_site(site_root, {"a.html": page('<a href="http://example.invalid/">plain http</a>')})
    audit = HTMLAudit(make_options(enforce_https=True, check_external=False))
    await audit.run()
    assert messages(audit) == ["is not an HTTPS target"]
    assert audit.ctx.fetcher.url_probes == 0


@pytest.mark.asyncio()
async def test_conservative_transport_still_checks(site_root, make_options, counting_server):
    base, hits = counting_server
    write_site(site_root, {"a.html": page(f'<a href="{base}/ok">ok</a><a href="{base}/missing">no</a>')})
    audit = HTMLAudit(make_options(check_external=True, conservative_transport=True))
    await audit.run()
    assert hits == {"/ok": 1, "/missing": 1}
    assert messages(audit) == ["Non-OK status: 404"]


@pytest.mark.asyncio()
async def test_timeout_is_an_error(site_root, make_options, counting_server):
    base, _ = counting_server
    write_site(site_root, {"a.html": page(f'<a href="{base}/slow">slow</a>')})
    audit = HTMLAudit(make_options(check_external=True, external_timeout=0.05))
    await audit.run()
    assert messages(audit) == ["request exceeded our ExternalTimeout"]
    assert audit.count_errors() == 1


# --------------------------------------------------------------------------- #
#                         Pre-flight & run outputs                            #
# --------------------------------------------------------------------------- #


def test_missing_root_aborts(tmp_path, make_options):
    audit = HTMLAudit(make_options(directory_path=tmp_path / "nope"))
    with pytest.raises(AuditAborted, match="no such directory"):
        audit.start_audit()
    assert len(audit.issue_store) == 0


def test_root_is_a_file_aborts(tmp_path, make_options):
    not_dir = tmp_path / "file.html"
    not_dir.write_text(page(), encoding="utf-8")
    with pytest.raises(AuditAborted, match="is a file, not a directory"):
        HTMLAudit(make_options(directory_path=not_dir)).start_audit()


def test_neither_path_aborts(make_options):
    with pytest.raises(AuditAborted, match="Neither file or directory path provided"):
        HTMLAudit(make_options(directory_path=None)).start_audit()


def test_single_document_mode(site_root, make_options):
    write_site(
        site_root,
        {
            "a.html": page('<a href="b.html#part">to b</a>'),
            "b.html": page('<a href="gone.html">broken</a>'),
        },
    )
    audit = HTMLAudit(make_options(file_path="a.html"))
    audit.start_audit()
    assert messages(audit) == ["hash does not exist"]
    assert audit.count_documents() == 1
    assert len(audit.document_store) == 2

    with pytest.raises(AuditAborted, match="Could not find document"):
        HTMLAudit(make_options(file_path="zzz.html")).start_audit()


def test_log_file_written(site_root, make_options):
    write_site(site_root, {"a.html": page('<a href="x.html">x</a>')})
    options = make_options(enable_log=True)
    HTMLAudit(options).start_audit()
    lines = options.log_path.read_text(encoding="utf-8").splitlines()
    assert lines == ["[ERROR] a.html: target does not exist --- x.html (<a> on line 2)"]


@pytest.mark.parametrize("concurrent", [False, True])
def test_documents_are_parsed_off_the_event_loop(site_root, make_options, monkeypatch, concurrent):
    write_site(
        site_root,
        {
            "a.html": page('<a href="b.html#part">to b</a><a href="c.html#top">to c</a>'),
            "b.html": page('<h2 id="part">Part</h2>'),
            "c.html": page(),
        },
    )
    on_loop_thread: list[bool] = []
    real_parse_nodes = html_parser.parse_nodes

    def recording_parse_nodes(markup, *args, **kwargs):
        on_loop_thread.append(threading.current_thread() is threading.main_thread())
        return real_parse_nodes(markup, *args, **kwargs)

    monkeypatch.setattr(html_parser, "parse_nodes", recording_parse_nodes)

    # single-document mode: b.html and c.html are only parsed for their fragments
    audit = HTMLAudit(make_options(file_path="a.html", test_files_concurrently=concurrent))
    audit.start_audit()

    assert [(i.reference, i.message) for i in audit.issue_store.issues if i.level is IssueLevel.ERROR] == [
        ("c.html#top", "hash does not exist")
    ]
    assert len(on_loop_thread) == 3
    assert not any(on_loop_thread)
