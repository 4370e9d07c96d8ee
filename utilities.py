#!/usr/bin/python3
"""
Site configuration from shell variables
And some utilities
"""

from typing import List
import os
import time

# To please pylint:
SITE_SOURCE = SITE_OUTPUT = SITE_INCLUDES = SITE_IP = SITE_HTTP = None
SITE_CHECK_EXTERNAL = SITE_TIMEOUT = SITE_CONCURRENCY = None

CONFIGURATIONS = (
    ('SITE_SOURCE'        ,'Source tree of the site'               , 'content'),
    ('SITE_OUTPUT'        ,'Build output directory'                , 'public'),
    ('SITE_INCLUDES'      ,'Include directory (in the source tree)', 'incl'),
    ('SITE_IP'            ,'For Socket IP binding'                 , '127.0.0.1'),
    ('SITE_HTTP'          ,'Port number for HTTP'                  , 8000),
    ('SITE_CHECK_EXTERNAL','Check external links (needs network)'  , 0),
    ('SITE_TIMEOUT'       ,'External link timeout in seconds'      , 10),
    ('SITE_CONCURRENCY'   ,'Simultaneous external link checks'     , 8),
)

def var(name, comment, export='export '):
    """Display a shell affectation with the current variable value"""
    val = globals()[name]
    escaped = str(val).replace("'", "'\"'\"'")
    affectation = f"{export}{name}='{escaped}'"
    return affectation.ljust(50) + " # " + comment

def init_globals():
    """Initialise global variables of this module from shell variables"""
    for name, _comment, default in CONFIGURATIONS:
        if not isinstance(default, (int, str)):
            default = default()
        value = os.getenv(name, default)
        if isinstance(default, int):
            value = int(value)
        globals()[name] = value

init_globals()

def print_state() -> None:
    """Print the current configuration"""
    print("Uses environment shell variables :")
    for name, comment, _default in CONFIGURATIONS:
        print(var(name, comment, export=''))

def log(message):
    """Formatte messages (same beginning than aiohttp messages)"""
    print(f'{time.strftime("%Y-%m-%d %H:%M:%S")}     {message}', flush=True)

def is_hidden(relative:str) -> bool:
    """True if one of the path components starts with a dot"""
    return any(part.startswith('.') for part in relative.split('/'))

def in_includes(relative:str, includes:str) -> bool:
    """True if the source relative path is inside the include directory"""
    includes = includes.strip('/')
    return bool(includes) and (relative == includes or relative.startswith(includes + '/'))

def site_files(root:str, includes:str) -> List[str]:
    """Relative paths of the published files (pages and assets), sorted"""
    files = []
    for directory, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            relative = os.path.relpath(os.path.join(directory, filename), root)
            relative = relative.replace(os.sep, '/')
            if is_hidden(relative) or in_includes(relative, includes):
                continue
            files.append(relative)
    return files

def is_page(relative:str) -> bool:
    """Pages are expanded, other files are copied"""
    return relative.endswith('.html')
