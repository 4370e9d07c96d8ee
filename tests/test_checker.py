import os

import pytest
from aiohttp import web

import checker
import template
from conftest import CONTENT, FOOTER, HEADER, write

HEAD = '<html><head><title>Coq</title></head><body>\n'
TITLE = {"TITLE": "Coq"}


def kinds(text, definitions=TITLE):
    return [problem.kind for problem in checker.check_text(text, "p.html", definitions)]


def test_clean_page(site):
    page = template.render(os.path.join(site, "index.html"), site)
    assert checker.check_text(page.text, page.filename, page.definitions) == []


def test_unresolved_directive():
    problems = checker.check_text(HEAD + 'a\n<#include "incl/header.html">\n</#def>', "p.html", TITLE)
    assert [(problem.kind, problem.line) for problem in problems] == [
        ("unresolved-directive", 3), ("unresolved-directive", 4)]


def test_pre_unclosed():
    problems = checker.check_text(HEAD + "\n<pre>\nx := 1.\n", "p.html", TITLE)
    assert [(problem.kind, problem.line) for problem in problems] == [("pre-unclosed", 3)]


def test_pre_nested():
    assert kinds(HEAD + "<pre>a<pre>b</pre>") == ["pre-nested"]


@pytest.mark.parametrize("code", [
    "<b>gras</b> et <i>italique</i>",
    "<a href='#x'>lien</a><br><br/>",
    "x &lt; y &amp;&amp; y &gt; z",
    "a < b",
    "∀ n : nat, Σ i, λ x ⇒ x",
])
def test_pre_accepted(code):
    assert kinds(HEAD + "<pre>" + code + "</pre>") == []


def test_pre_unescaped_less_than():
    problems = checker.check_text(HEAD + "<pre>\nCheck nil : list<nat>.\n</pre>",
                                  "p.html", TITLE)
    assert [problem.kind for problem in problems] == ["pre-raw-markup", "pre-unbalanced"]
    assert "«<nat>»" in problems[0].message
    assert problems[0].line == 3


@pytest.mark.parametrize("code", ["<b>gras", "<b><i>x</b></i>", "x</b>"])
def test_pre_unbalanced(code):
    assert "pre-unbalanced" in kinds(HEAD + "<pre>" + code + "</pre>")


@pytest.mark.parametrize("text", ["&amp;lt;", "&amp;gt;", "&amp;amp;", "&amp;#8704;", "&amp;#x3A3;"])
def test_double_escape(text):
    assert kinds(HEAD + "<pre>" + text + "</pre>") == ["double-escape"]


def test_single_ampersand_is_fine():
    assert kinds(HEAD + "<p>Coq &amp; Gallina &lt;3</p>") == []


@pytest.mark.parametrize("symbol", ["∀", "Σ", "é", "→", "λ"])
def test_mojibake(symbol):
    for encoding in ("latin-1", "cp1252"):
        broken = symbol.encode("utf-8").decode(encoding, "ignore")
        assert kinds(HEAD + "<pre>" + broken + "</pre>") == ["mojibake"]


def test_french_text_is_not_mojibake():
    assert kinds(HEAD + "<p>Être à l'âge où « Coq » prouve ∀ n.</p>") == []


@pytest.mark.parametrize("text", ["<p>« la vérité\u00a0»</p>", "vérité\u00a0»", "Où\u00a0?"])
def test_french_nbsp_before_punctuation_is_not_mojibake(text):
    assert kinds(HEAD + text) == []


def test_title_missing():
    assert kinds(HEAD, {}) == ["title-missing"]


def test_title_empty():
    assert kinds(HEAD, {"TITLE": "  "}) == ["title-empty"]


def test_title_not_in_head():
    assert kinds("<html><head></head><body><title>Coq</title>", TITLE) == ["title-not-in-head"]
    assert kinds("<html><head><title>Autre</title></head>", TITLE) == ["title-not-in-head"]


def test_title_compared_as_text():
    text = "<html><head><title>Les  types &Sigma;\n</title></head>"
    assert kinds(text, {"TITLE": "Les <em>types</em> Σ"}) == []


def test_link_extraction():
    text = """<a href="coq.html#cic">a</a>
<img src="/img/logo.png">
<a href="https://coq.inria.fr/">b</a><a href="//example.org/x">c</a>
<a href="mailto:someone@example.org">d</a><a href="javascript:void(0)">e</a>
<a name="ancre">f</a>"""
    assert checker.local_links(text) == [("coq.html#cic", 1), ("/img/logo.png", 2)]
    assert checker.external_links(text) == [("https://coq.inria.fr/", 3),
                                            ("https://example.org/x", 3)]


def test_internal_links(tmp_path):
    root = str(tmp_path)
    write(root, "incl/header.html", HEADER)
    write(root, "incl/footer.html", FOOTER)
    write(root, "style.css", "")
    write(root, "doc/index.html", '<#def TITLE>Doc</#def><#include "incl/header.html"><h2 id="a">A</h2>')
    filename = write(root, "index.html", """<#def TITLE>Accueil</#def>
<#include "incl/header.html">
<a href="doc/">ok</a>
<a href="doc/index.html#a">ok</a>
<a href="/doc/#a">ok</a>
<a href="#top" id="top">ok</a>
<a href="doc/index.html#b">no anchor</a>
<a href="missing.html">missing</a>
<a href="incl/footer.html">not published</a>
<a href="../outside.html">outside</a>
<#include "incl/footer.html">
""")
    page = template.render(filename, root)
    problems = checker.LinkChecker(root, "incl").check(page.text, filename)
    assert [problem.line for problem in problems] == [15, 16, 17, 18]
    assert all(problem.kind == "broken-link" for problem in problems)
    assert "«b»" in problems[0].message


async def test_check_site_real_content():
    reports = await checker.check_site(CONTENT, "incl")
    assert sorted(os.path.basename(report.filename) for report in reports) == ["coq.html", "index.html"]
    for report in reports:
        assert report.ok, [str(problem) for problem in report.problems]


async def test_check_site_render_error(site):
    write(site, "bad.html", '<#def TITLE>x</#def>\n<#include "incl/nothing.html">\n')
    reports = {os.path.basename(report.filename): report
               for report in await checker.check_site(site, "incl")}
    assert reports["index.html"].ok
    assert reports["bad.html"].kinds() == ["render-error"]
    assert reports["bad.html"].problems[0].line == 2


@pytest.fixture
async def remote(aiohttp_server):
    async def ok(_request):
        return web.Response(text="ok")

    async def missing(_request):
        raise web.HTTPNotFound()

    app = web.Application()
    app.add_routes([web.get("/ok", ok),
                    web.get("/missing", missing),
                    web.get("/nohead", ok, allow_head=False)])
    server = await aiohttp_server(app)
    return str(server.make_url("")).rstrip("/")


async def test_check_urls(remote):
    errors = await checker.check_urls(
        [f"{remote}/ok", f"{remote}/missing", f"{remote}/nohead", "http://127.0.0.1:1/"],
        timeout=5, concurrency=2)
    assert errors[f"{remote}/ok"] is None
    assert errors[f"{remote}/nohead"] is None
    assert errors[f"{remote}/missing"] == f"HTTP 404: «{remote}/missing»"
    assert errors["http://127.0.0.1:1/"] is not None


async def test_check_site_external(site, remote):
    write(site, "links.html", f"""<#def TITLE>Liens</#def>
<#include "incl/header.html">
<a href="{remote}/ok">ok</a>
<a href="{remote}/missing">missing</a>
<#include "incl/footer.html">
""")
    reports = {os.path.basename(report.filename): report
               for report in await checker.check_site(site, "incl", check_external=True, timeout=5)}
    assert [(problem.kind, problem.line) for problem in reports["links.html"].problems] == [
        ("broken-link", 12)]
    reports = {os.path.basename(report.filename): report
               for report in await checker.check_site(site, "incl", check_external=False)}
    assert reports["links.html"].ok


async def test_check_site_page_not_in_utf8(site):
    with open(os.path.join(site, "latin.html"), "wb") as file:
        file.write("<#def TITLE>Été</#def>\n".encode("latin-1"))
    reports = {os.path.basename(report.filename): report
               for report in await checker.check_site(site, "incl")}
    assert reports["index.html"].ok
    assert reports["latin.html"].kinds() == ["render-error"]
    assert "Not UTF-8" in reports["latin.html"].problems[0].message


async def test_check_urls_unexpected_error(monkeypatch):
    async def check_url(_session, url, _semaphore):
        if url.endswith("/bad"):
            raise RuntimeError("unexpected")
        return None
    monkeypatch.setattr(checker, "check_url", check_url)
    errors = await checker.check_urls(["http://a.example/bad", "http://a.example/good"],
                                      timeout=5, concurrency=2)
    assert errors == {"http://a.example/bad": "RuntimeError unexpected: «http://a.example/bad»",
                      "http://a.example/good": None}
