"""
Render the site into the output directory.

Pages are expanded, other files are copied.
A page is rendered again only if one of the files it read is newer
than its output: the files read are recorded in DEPENDENCIES.
"""

from typing import Dict, List, Tuple
import os
import json
import shutil
import template
import utilities

DEPENDENCIES = '.dependencies.json'

class BuildResult: # pylint: disable=too-few-public-methods
    """What the build did"""
    def __init__(self):
        self.rendered:List[str] = []
        self.copied:List[str] = []
        self.unchanged:List[str] = []
        self.errors:List[template.TemplateError] = []
    @property
    def ok(self) -> bool: # pylint: disable=invalid-name
        """No page failed"""
        return not self.errors
    def __str__(self):
        return (f'{len(self.rendered)} rendered, {len(self.copied)} copied, '
                f'{len(self.unchanged)} unchanged, {len(self.errors)} errors')

def load_dependencies(output:str) -> Dict[str,List[str]]:
    """Files read by each page at the previous build"""
    try:
        with open(os.path.join(output, DEPENDENCIES), 'r', encoding='utf-8') as file:
            return json.loads(file.read())
    except (FileNotFoundError, ValueError):
        return {}

def save_dependencies(output:str, dependencies:Dict[str,List[str]]) -> None:
    """Record the files read by each page"""
    with open(os.path.join(output, DEPENDENCIES), 'w', encoding='utf-8') as file:
        file.write(json.dumps(dependencies, indent=1, sort_keys=True))

def up_to_date(target:str, sources:List[str]) -> bool:
    """The target exists and is newer than all the sources"""
    if not sources or not os.path.exists(target):
        return False
    mtime = os.path.getmtime(target)
    try:
        return all(os.path.getmtime(source) <= mtime for source in sources)
    except FileNotFoundError: # An include was removed
        return False

def write(filename:str, content:str) -> None:
    """Write UTF-8, creating the directories"""
    os.makedirs(os.path.dirname(filename) or '.', exist_ok=True)
    with open(filename, 'w', encoding='utf-8', newline='') as file:
        file.write(content)

def render_page(source:str, output:str, relative:str) -> Tuple[str,List[str]]:
    """Render one page, returns the output filename and the files read"""
    page = template.render(os.path.join(source, relative), source)
    target = os.path.join(output, relative)
    write(target, page.text)
    return target, [os.path.relpath(filename, source).replace(os.sep, '/')
                    for filename in page.dependencies]

def build_site(source:str, output:str, includes:str, force:bool=False) -> BuildResult:
    """Render the pages and copy the other files"""
    result = BuildResult()
    real_source = os.path.realpath(source)
    if os.path.commonpath([real_source, os.path.realpath(output)]) == real_source:
        raise ValueError(f'Output directory «{output}» is inside the source directory «{source}»')
    os.makedirs(output, exist_ok=True)
    old_dependencies = {} if force else load_dependencies(output)
    dependencies = {}
    for relative in utilities.site_files(source, includes):
        target = os.path.join(output, relative)
        if utilities.is_page(relative):
            sources = [os.path.join(source, name)
                       for name in old_dependencies.get(relative, [])]
            if up_to_date(target, sources):
                dependencies[relative] = old_dependencies[relative]
                result.unchanged.append(relative)
                continue
            try:
                target, dependencies[relative] = render_page(source, output, relative)
            except template.TemplateError as error:
                utilities.log(f'ERROR {error}')
                result.errors.append(error)
                continue
            utilities.log(f'Rendered {target}')
            result.rendered.append(relative)
        else:
            if not force and up_to_date(target, [os.path.join(source, relative)]):
                result.unchanged.append(relative)
                continue
            os.makedirs(os.path.dirname(target) or '.', exist_ok=True)
            shutil.copy2(os.path.join(source, relative), target)
            result.copied.append(relative)
    save_dependencies(output, dependencies)
    utilities.log(f'Build {source} → {output}: {result}')
    return result
