#!/usr/bin/python3
"""
Simple web server rendering the pages on request
"""

from typing import Dict, List, Optional, Tuple, Union
import os
import time
import html
import logging
from aiohttp import web
from aiohttp.web_request import Request
from aiohttp.web_response import Response
from aiohttp.abc import AbstractAccessLogger
import template
import utilities
from utilities import log

ROOT = web.AppKey("root", str)
INCLUDES = web.AppKey("includes", str)

MIMES = {
    'html': ('text/html', 'utf-8'),
    'css': ('text/css', 'utf-8'),
    'js': ('application/x-javascript', 'utf-8'),
    'txt': ('text/plain', 'utf-8'),
    'svg': ('image/svg+xml', 'utf-8'),
    'ico': ('image/vnd.microsoft.icon', None),
    'png': ('image/png', None),
    'gif': ('image/gif', None),
    'jpg': ('image/jpg', None),
    'pdf': ('application/pdf', None),
}

def answer(content:Union[str,bytes], content_type:str="text/html",
           charset:Optional[str]='utf-8', status:int=200) -> Response:
    """Standard response"""
    return web.Response(
        body=content if isinstance(content, bytes) else content.encode(charset or 'utf-8'),
        status=status,
        content_type=content_type,
        charset=charset,
        headers={'Cache-Control': 'no-store'}
    )

class File:
    """Manage file answer"""
    file_cache:Dict[str,"File"] = {}

    def __init__(self, filename:str, root:str):
        self.filename = filename
        self.root = root
        self.mtimes:Tuple[float,...] = ()
        self.dependencies:List[str] = [filename]
        self.content:Union[str,bytes] = ''
        self.mime, self.charset = MIMES.get(filename.rsplit('.', 1)[-1].lower(),
                                            ('text/plain', None))
        if self.mime == 'text/plain' and not filename.endswith('.txt'):
            log(f'Unknown mimetype {filename}')

    def get_mtimes(self) -> Tuple[float,...]:
        """Dates of the files read to create the content"""
        try:
            return tuple(os.path.getmtime(filename) for filename in self.dependencies)
        except FileNotFoundError:
            return ()

    def get_content(self) -> Union[str,bytes]:
        """Check files dates and returns content, pages are rendered"""
        mtimes = self.get_mtimes()
        if not mtimes or mtimes != self.mtimes:
            if utilities.is_page(self.filename):
                page = template.render(self.filename, self.root)
                self.content = page.text
                self.dependencies = page.dependencies
            else:
                with open(self.filename, "rb") as file:
                    self.content = file.read()
            self.mtimes = self.get_mtimes()
        return self.content

    def answer(self) -> Response:
        """Get the response to send"""
        return answer(self.get_content(), content_type=self.mime, charset=self.charset)

    @classmethod
    def get(cls, filename:str, root:str) -> "File":
        """Get or create File object"""
        if filename not in cls.file_cache:
            if not os.path.isfile(filename):
                raise web.HTTPNotFound(body=f"Not found: {filename}")
            cls.file_cache[filename] = File(filename, root)
        return cls.file_cache[filename]

def source_path(app:web.Application, path:str) -> str:
    """The source file for the URL path"""
    path = path.strip('/')
    if '..' in path.split('/') or utilities.is_hidden(path):
        raise web.HTTPForbidden(body="Arrêtez de hacker! " + path)
    if utilities.in_includes(path, app[INCLUDES]):
        raise web.HTTPNotFound(body=f"Not found: {path}")
    filename = os.path.join(app[ROOT], path)
    if not path or os.path.isdir(filename):
        filename = os.path.join(filename, 'index.html')
    return filename

async def handle(request:Request) -> Response:
    """Send the file, pages are rendered"""
    filename = source_path(request.app, request.match_info.get('filename', ''))
    try:
        return File.get(filename, request.app[ROOT]).answer()
    except template.TemplateError as error:
        log(f'ERROR {error}')
        return answer(f'<!DOCTYPE html><title>Render error</title>'
                      f'<h1>Render error</h1><pre>{html.escape(str(error))}</pre>',
                      status=500)
    except FileNotFoundError as error: # Removed since cached
        File.file_cache.pop(filename, None)
        raise web.HTTPNotFound(body=f"Not found: {filename}") from error

class AccessLogger(AbstractAccessLogger): # pylint: disable=too-few-public-methods
    """Logger for aiohttp"""
    def log(self, request, response, time): # pylint: disable=redefined-outer-name
        path = request.path.replace('\n', '\\n')
        print(f"{now()} {response.status} "
              f"{time:5.3f} {request.method[0]} "
              f"{path}",
              flush=True)

def now() -> str:
    """Same format than 'log'"""
    return time.strftime('%Y-%m-%d %H:%M:%S')

def create_app(root:str, includes:str) -> web.Application:
    """The site application"""
    app = web.Application()
    app[ROOT] = root
    app[INCLUDES] = includes
    app.add_routes([web.get('/', handle),
                    web.get('/{filename:.*}', handle),
                    ])
    return app

def main():
    """Run http server"""
    logging.basicConfig(level=logging.INFO)
    app = create_app(utilities.SITE_SOURCE, utilities.SITE_INCLUDES)
    log(f'Serve {utilities.SITE_SOURCE} on http://{utilities.SITE_IP}:{utilities.SITE_HTTP}/')
    web.run_app(app, host=utilities.SITE_IP, port=utilities.SITE_HTTP,
                access_log_class=AccessLogger, print=None)

if __name__ == '__main__':
    main()
