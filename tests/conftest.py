import os
from pathlib import Path

import pytest

CONTENT = str(Path(__file__).resolve().parents[1] / "content")

HEADER = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title><#TITLE></title>
<link rel="stylesheet" href="/style.css">
</head>
<body>
"""

FOOTER = """</body>
</html>
"""

PAGE = """<#def TITLE>Les types Σ</#def>
<#include "incl/header.html">
<h1 id="top"><#TITLE></h1>
<pre>
Definition f (n : nat) := n &lt;? 3.
Check ∀ x : nat, x &gt; 0.
</pre>
<a href="#top">haut</a>
<#include "incl/footer.html">
"""


def write(root, relative, content):
    filename = os.path.join(str(root), relative)
    os.makedirs(os.path.dirname(filename), exist_ok=True)
    with open(filename, "w", encoding="utf-8") as file:
        file.write(content)
    return filename


@pytest.fixture
def site(tmp_path):
    """A small source tree: one page, the includes and a stylesheet"""
    root = tmp_path / "content"
    write(root, "incl/header.html", HEADER)
    write(root, "incl/footer.html", FOOTER)
    write(root, "index.html", PAGE)
    write(root, "style.css", "BODY { margin: 0 }\n")
    return str(root)
