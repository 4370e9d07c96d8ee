"""
Content integrity checks on rendered pages:

   * no directive left unexpanded
   * <pre> blocks well formed, no raw '<', no double escaping, no mojibake
   * TITLE defined, not empty and in the <head><title>
   * internal and external links resolve
"""

from typing import Dict, List, Optional, Set, Tuple
import os
import re
import html
import html.parser
import asyncio
import urllib.parse
import aiohttp
import template
import utilities

PRE_ALLOWED = {'a', 'b', 'i', 'em', 'strong', 'code', 'span', 'kbd', 'var',
               'samp', 'u', 'sub', 'sup', 'br'}
VOID = {'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input', 'link',
        'meta', 'param', 'source', 'track', 'wbr'}
LINK_ATTRIBUTES = {
    'a': 'href', 'link': 'href', 'area': 'href',
    'img': 'src', 'script': 'src', 'iframe': 'src', 'source': 'src',
    'audio': 'src', 'video': 'src', 'embed': 'src',
}
IGNORED_SCHEMES = ('mailto:', 'javascript:', 'data:', 'tel:')

UNRESOLVED = re.compile('</?#')
DOUBLE_ESCAPE = re.compile('&amp;(?:lt|gt|amp|quot|#[0-9]+|#x[0-9a-fA-F]+);')
# UTF-8 continuation bytes seen through Latin-1 or CP1252
CONTINUATION = ''.join(sorted(set(bytes(range(0x80, 0xc0)).decode('latin-1')
                                  + bytes(range(0x80, 0xc0)).decode('cp1252', 'ignore'))))
_C = '[' + re.escape(CONTINUATION) + ']'
# A UTF-8 lead byte followed by the right number of continuation bytes
MOJIBAKE = re.compile(f'[Â-ß]{_C}|[à-ï]{_C}{{2}}|[ð-ô]{_C}{{3}}')
# Decoded characters a real page may contain. «é\xa0»» decodes to a CJK ideograph
PLAUSIBLE = (
    (0x0080, 0x024F), # Latin-1 supplement, Latin extended
    (0x0370, 0x052F), # Greek, Cyrillic
    (0x1E00, 0x1FFF), # Latin extended additional, Greek extended
    (0x2000, 0x2BFF), # Punctuation, arrows, mathematical operators
    (0x1D400, 0x1D7FF), # Mathematical alphanumeric symbols
    (0x1F300, 0x1FAFF), # Emoji
)
TAG = re.compile('<[^>]*>')

class Problem: # pylint: disable=too-few-public-methods
    """One failed check"""
    def __init__(self, kind:str, filename:str, line:int, message:str):
        self.kind = kind
        self.filename = filename
        self.line = line
        self.message = message
    def __str__(self):
        return f'{self.filename}:{self.line}: [{self.kind}] {self.message}'
    def __repr__(self):
        return f'Problem({self.kind!r}, {self.filename!r}, {self.line}, {self.message!r})'

class Report:
    """The problems of one page"""
    def __init__(self, filename:str):
        self.filename = filename
        self.problems:List[Problem] = []
    @property
    def ok(self) -> bool: # pylint: disable=invalid-name
        """No problem found"""
        return not self.problems
    def kinds(self) -> List[str]:
        """Problem kinds, in page order"""
        return [problem.kind for problem in self.problems]

class PageParser(html.parser.HTMLParser): # pylint: disable=abstract-method
    """Collect <pre> problems, head title, anchors and links"""
    def __init__(self, filename:str):
        super().__init__(convert_charrefs=True)
        self.filename = filename
        self.problems:List[Problem] = []
        self.ids:Set[str] = set()
        self.links:List[Tuple[str,int]] = []
        self.head_title:Optional[str] = None
        self.in_head = False
        self.in_title = False
        self.title:List[str] = []
        self.pre_line = 0 # 0: not in <pre>
        self.pre_stack:List[str] = []

    def problem(self, kind:str, message:str, line:int=0):
        """Record a problem at the current position"""
        self.problems.append(Problem(kind, self.filename, line or self.getpos()[0], message))

    def handle_starttag(self, tag, attrs):
        self.handle_attributes(tag, attrs)
        if tag == 'head':
            self.in_head = True
        elif tag == 'body':
            self.in_head = False
        elif tag == 'title':
            self.in_title = True
            self.title = []
        elif tag == 'pre':
            if self.pre_line:
                self.problem('pre-nested', f'<pre> inside the <pre> of line {self.pre_line}')
            else:
                self.pre_line = self.getpos()[0]
                self.pre_stack = []
        elif self.pre_line:
            if tag not in PRE_ALLOWED:
                self.problem('pre-raw-markup',
                             f'«<{tag}>» inside <pre>, unescaped «<» in the code?')
            if tag not in VOID:
                self.pre_stack.append(tag)

    def handle_startendtag(self, tag, attrs):
        self.handle_attributes(tag, attrs)
        if self.pre_line and tag not in PRE_ALLOWED:
            self.problem('pre-raw-markup', f'«<{tag}/>» inside <pre>, unescaped «<» in the code?')

    def handle_endtag(self, tag):
        if tag == 'head':
            self.in_head = False
        elif tag == 'title':
            if self.in_title and self.in_head:
                self.head_title = ''.join(self.title)
            self.in_title = False
        elif self.pre_line:
            if tag == 'pre':
                for unclosed in self.pre_stack:
                    self.problem('pre-unbalanced', f'«<{unclosed}>» not closed in <pre>')
                self.pre_line = 0
            elif self.pre_stack and self.pre_stack[-1] == tag:
                self.pre_stack.pop()
            elif tag not in VOID:
                self.problem('pre-unbalanced', f'Unexpected «</{tag}>» in <pre>')

    def handle_data(self, data):
        if self.in_title:
            self.title.append(data)

    def handle_attributes(self, tag, attrs):
        """Anchors and link targets"""
        for name, value in attrs:
            if name in ('id', 'name') and value:
                self.ids.add(value)
        attribute = LINK_ATTRIBUTES.get(tag)
        if attribute:
            for name, value in attrs:
                if name == attribute and value:
                    self.links.append((value.strip(), self.getpos()[0]))

    def close(self):
        super().close()
        if self.pre_line:
            self.problem('pre-unclosed', '<pre> without </pre>', self.pre_line)

def parse(text:str, filename:str) -> PageParser:
    """Parse a whole rendered page"""
    parser = PageParser(filename)
    parser.feed(text)
    parser.close()
    return parser

def line_of(text:str, position:int) -> int:
    """1-based line number of the position"""
    return text.count('\n', 0, position) + 1

def normalize(text:str) -> str:
    """The visible text: no tags, no entities, single spaces"""
    return ' '.join(html.unescape(TAG.sub('', text)).split())

def plausible(char:str) -> bool:
    """The character may appear in a Latin, Greek or mathematical text"""
    return any(low <= ord(char) <= high for low, high in PLAUSIBLE)

def is_mojibake(text:str) -> bool:
    """The characters are the bytes of a UTF-8 sequence of a plausible character"""
    for encoding in ('cp1252', 'latin-1'):
        try:
            decoded = text.encode(encoding).decode('utf-8')
        except UnicodeError:
            continue
        return all(plausible(char) for char in decoded)
    return False

def check_title(parser:PageParser, filename:str, definitions:Dict[str,str]) -> List[Problem]:
    """TITLE must be defined, not empty and displayed in the <head>"""
    if 'TITLE' not in definitions:
        return [Problem('title-missing', filename, 1, 'TITLE is not defined')]
    expected = normalize(definitions['TITLE'])
    if not expected:
        return [Problem('title-empty', filename, 1, 'TITLE is empty')]
    if parser.head_title is None or normalize(parser.head_title) != expected:
        return [Problem('title-not-in-head', filename, 1,
                        f'«{expected}» is not the <title> of the <head>')]
    return []

def check_text(text:str, filename:str, definitions:Dict[str,str]) -> List[Problem]:
    """All the checks not needing other files"""
    problems = [Problem('unresolved-directive', filename, line_of(text, match.start()),
                        f'Directive not expanded: «{text[match.start():match.start()+30]}»')
                for match in UNRESOLVED.finditer(text)]
    problems += [Problem('double-escape', filename, line_of(text, match.start()),
                         f'Escaped twice: «{match.group()}»')
                 for match in DOUBLE_ESCAPE.finditer(text)]
    problems += [Problem('mojibake', filename, line_of(text, match.start()),
                         f'UTF-8 decoded as Latin-1: «{match.group()}»')
                 for match in MOJIBAKE.finditer(text)
                 if is_mojibake(match.group())]
    parser = parse(text, filename)
    problems += parser.problems
    problems += check_title(parser, filename, definitions)
    problems.sort(key=lambda problem: problem.line)
    return problems

def is_external(url:str) -> bool:
    """http(s) or protocol relative"""
    return url.lower().startswith(('//', 'http:', 'https:'))

def external_links(text:str) -> List[Tuple[str,int]]:
    """External links of the page with their line"""
    return [(('https:' + url) if url.startswith('//') else url, line)
            for url, line in parse(text, '').links
            if is_external(url)]

def local_links(text:str) -> List[Tuple[str,int]]:
    """Links to the site itself with their line"""
    return [(url, line)
            for url, line in parse(text, '').links
            if not is_external(url)
            and not url.lower().startswith(IGNORED_SCHEMES)]

class LinkChecker:
    """Resolve internal links in the source tree"""
    def __init__(self, root:str, includes:str):
        self.root = root
        self.includes = includes
        self.ids:Dict[str,Optional[Set[str]]] = {}

    def anchors(self, filename:str) -> Optional[Set[str]]:
        """Anchors of a page, None if it does not render"""
        if filename not in self.ids:
            try:
                page = template.render(filename, self.root)
                self.ids[filename] = parse(page.text, filename).ids
            except template.TemplateError:
                self.ids[filename] = None
        return self.ids[filename]

    def target(self, url:str, filename:str) -> Tuple[Optional[str],str]:
        """The source file targeted and the fragment"""
        parts = urllib.parse.urlsplit(url)
        path = urllib.parse.unquote(parts.path)
        if not path:
            return filename, parts.fragment
        if path.startswith('/'):
            relative = path.lstrip('/')
        else:
            relative = os.path.relpath(os.path.join(os.path.dirname(filename), path), self.root)
        relative = os.path.normpath(relative).replace(os.sep, '/')
        if relative.startswith('..'):
            return None, parts.fragment
        if relative == '.' or os.path.isdir(os.path.join(self.root, relative)):
            relative = 'index.html' if relative == '.' else relative + '/index.html'
        if utilities.in_includes(relative, self.includes) or utilities.is_hidden(relative):
            return None, parts.fragment
        return os.path.join(self.root, relative), parts.fragment

    def check(self, text:str, filename:str) -> List[Problem]:
        """Problems of the internal links of the page"""
        problems = []
        for url, line in local_links(text):
            target, fragment = self.target(url, filename)
            if target is None or not os.path.isfile(target):
                problems.append(Problem('broken-link', filename, line, f'Not found: «{url}»'))
            elif fragment and utilities.is_page(target):
                anchors = self.anchors(target)
                if anchors is None:
                    problems.append(Problem('broken-link', filename, line,
                                            f'Target does not render: «{url}»'))
                elif fragment not in anchors:
                    problems.append(Problem('broken-link', filename, line,
                                            f'No anchor «{fragment}»: «{url}»'))
        return problems

async def check_url(session:aiohttp.ClientSession, url:str,
                    semaphore:asyncio.Semaphore) -> Optional[str]:
    """None if the URL answers, the error message otherwise"""
    async with semaphore:
        try:
            async with session.head(url, allow_redirects=True) as response:
                status = response.status
            if status in (405, 501): # HEAD not allowed
                async with session.get(url, allow_redirects=True) as response:
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            detail = f' {error}' if str(error) else ''
            return f'{error.__class__.__name__}{detail}: «{url}»'
    if status >= 400:
        return f'HTTP {status}: «{url}»'
    return None

async def check_urls(urls:List[str], timeout:float, concurrency:int) -> Dict[str,Optional[str]]:
    """Check each URL once"""
    semaphore = asyncio.Semaphore(concurrency)
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        results = await asyncio.gather(*(check_url(session, url, semaphore) for url in urls),
                                       return_exceptions=True)
    errors = {}
    for url, result in zip(urls, results):
        if isinstance(result, Exception):
            result = f'{result.__class__.__name__} {result}: «{url}»'
        elif isinstance(result, BaseException):
            raise result
        errors[url] = result
    return errors

async def check_site(root:str, includes:str, check_external:bool=False, # pylint: disable=too-many-arguments
                     timeout:float=10, concurrency:int=8) -> List[Report]:
    """Render and check all the pages of the site"""
    links = LinkChecker(root, includes)
    reports = []
    external:Dict[str,List[Tuple[Report,int]]] = {}
    for relative in utilities.site_files(root, includes):
        if not utilities.is_page(relative):
            continue
        filename = os.path.join(root, relative)
        report = Report(filename)
        reports.append(report)
        try:
            page = template.render(filename, root)
        except template.TemplateError as error:
            report.problems.append(Problem('render-error', error.filename, error.line,
                                           error.message))
            continue
        report.problems += check_text(page.text, filename, page.definitions)
        report.problems += links.check(page.text, filename)
        for url, line in external_links(page.text):
            external.setdefault(url, []).append((report, line))
    if check_external and external:
        utilities.log(f'Check {len(external)} external links')
        errors = await check_urls(sorted(external), timeout, concurrency)
        for url, error in errors.items():
            if error:
                for report, line in external[url]:
                    report.problems.append(Problem('broken-link', report.filename, line, error))
    for report in reports:
        report.problems.sort(key=lambda problem: problem.line)
    return reports
