"""
Page preprocessor: definitions, references and includes.

    <#def TITLE>Introduction à Coq</#def>   Define TITLE (no output)
    <#TITLE>                                Replaced by the value of TITLE
    <#include "incl/header.html">           Replaced by the expanded file

Expansion is sequential: a reference only sees the definitions
textually before it (included files are part of the text).
Inserted values are never rescanned.
"""

from typing import Dict, List, Optional
import os
import re

MAX_DEPTH = 20

NAME = '[A-Za-z_][A-Za-z0-9_]*'
DIRECTIVE = re.compile(f'<#(?P<name>{NAME})(?P<argument>[^<>]*)>')
DEF_NAME = re.compile(f'^{NAME}$')
INCLUDE_PATH = re.compile('''^(?:"(?P<double>[^"]+)"|'(?P<simple>[^']+)')$''')
DEF_END = '</#def>'

class TemplateError(ValueError):
    """Expansion error located in a file"""
    def __init__(self, message:str, filename:str, line:int):
        super().__init__(f'{filename}:{line}: {message}')
        self.message = message
        self.filename = filename
        self.line = line

class Page: # pylint: disable=too-few-public-methods
    """The result of a page expansion"""
    def __init__(self, filename:str, text:str, definitions:Dict[str,str],
                 dependencies:List[str]):
        self.filename = filename
        self.text = text
        self.definitions = definitions
        self.dependencies = dependencies
    def __repr__(self):
        return f'Page({self.filename!r}, {len(self.text)} chars, {len(self.dependencies)} files)'

def read(filename:str) -> str:
    """Sources are UTF-8, newlines are kept as is"""
    with open(filename, 'rb') as file:
        content = file.read()
    try:
        return content.decode('utf-8')
    except UnicodeDecodeError as error:
        raise TemplateError(f'Not UTF-8: {error.reason}', filename,
                            content.count(b'\n', 0, error.start) + 1) from error

class Expander:
    """Expand one page and the files it includes"""
    def __init__(self, root:str, definitions:Optional[Dict[str,str]]=None):
        self.root = root
        self.definitions = dict(definitions or {})
        self.dependencies:List[str] = []
        self.stack:List[str] = []

    def resolve(self, path:str, filename:str, line:int) -> str:
        """Relative to the including file first, then to the site root"""
        for directory in (os.path.dirname(filename), self.root):
            candidate = os.path.normpath(os.path.join(directory, path))
            if os.path.isfile(candidate):
                return candidate
        raise TemplateError(f'Included file not found: «{path}»', filename, line)

    def include(self, path:str, filename:str, line:int) -> str:
        """Expand an included file"""
        included = self.resolve(path, filename, line)
        real = os.path.realpath(included)
        if real in self.stack:
            raise TemplateError(f'Include cycle: «{path}»', filename, line)
        if len(self.stack) > MAX_DEPTH:
            raise TemplateError(f'Includes nested deeper than {MAX_DEPTH}', filename, line)
        return self.expand_file(included)

    def expand_file(self, filename:str) -> str:
        """Expand a file content"""
        text = read(filename)
        return self.expand_text(text, filename)

    def expand_text(self, text:str, filename:str) -> str:
        """Expand a text coming from filename"""
        self.stack.append(os.path.realpath(filename))
        if filename not in self.dependencies:
            self.dependencies.append(filename)
        try:
            return self.expand(text, filename, 1)
        finally:
            self.stack.pop()

    def expand(self, text:str, filename:str, first_line:int) -> str: # pylint: disable=too-many-locals
        """Copy the text, replacing the directives"""
        def line_of(position):
            return first_line + text.count('\n', 0, position)
        output = []
        position = 0
        while True:
            start = text.find('<#', position)
            closing = text.find('</#', position)
            if closing != -1 and (start == -1 or closing < start):
                raise TemplateError('Closing directive without opening one',
                                    filename, line_of(closing))
            if start == -1:
                output.append(text[position:])
                return ''.join(output)
            output.append(text[position:start])
            match = DIRECTIVE.match(text, start)
            if not match:
                snippet = text[start:].split('\n', 1)[0][:40]
                raise TemplateError(f'Unclosed or invalid directive: «{snippet}»',
                                    filename, line_of(start))
            name = match.group('name')
            argument = match.group('argument').strip()
            if name == 'def':
                if not DEF_NAME.match(argument):
                    raise TemplateError(f'Invalid definition name: «{argument}»',
                                        filename, line_of(start))
                end = text.find(DEF_END, match.end())
                if end == -1:
                    raise TemplateError(f'«<#def {argument}>» without «{DEF_END}»',
                                        filename, line_of(start))
                value = self.expand(text[match.end():end], filename, line_of(match.end()))
                self.definitions[argument] = value.strip()
                position = end + len(DEF_END)
            elif name == 'include':
                path = INCLUDE_PATH.match(argument)
                if not path:
                    raise TemplateError(f'Invalid include: «{argument}»', filename, line_of(start))
                output.append(self.include(path.group('double') or path.group('simple'),
                                           filename, line_of(start)))
                position = match.end()
            elif argument:
                raise TemplateError(f'Unknown directive: «{name}»', filename, line_of(start))
            elif name in self.definitions:
                output.append(self.definitions[name])
                position = match.end()
            else:
                raise TemplateError(f'Undefined name: «{name}»', filename, line_of(start))

def render(filename:str, root:str, definitions:Optional[Dict[str,str]]=None) -> Page:
    """Expand the file"""
    expander = Expander(root, definitions)
    text = expander.expand_file(filename)
    return Page(filename, text, expander.definitions, expander.dependencies)

def render_text(text:str, filename:str, root:str,
                definitions:Optional[Dict[str,str]]=None) -> Page:
    """Expand a text as if it was the content of filename"""
    expander = Expander(root, definitions)
    text = expander.expand_text(text, filename)
    return Page(filename, text, expander.definitions, expander.dependencies)
