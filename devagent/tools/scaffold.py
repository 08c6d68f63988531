"""Project scaffolding from a small set of starter templates."""

import json
import re
from typing import Callable, Dict, List

from .file_ops import FileOperationError, FileOps

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")


def _node_api(name: str) -> Dict[str, str]:
    package = {
        "name": name,
        "version": "0.1.0",
        "private": True,
        "main": "src/index.js",
        "scripts": {"start": "node src/index.js"},
        "dependencies": {"express": "^4.19.0"},
    }
    return {
        "package.json": json.dumps(package, indent=2) + "\n",
        "src/index.js": (
            "const express = require('express');\n\n"
            "const app = express();\n"
            "app.use(express.json());\n\n"
            "app.get('/health', (req, res) => res.json({ status: 'ok' }));\n\n"
            "const port = process.env.PORT || 3000;\n"
            f"app.listen(port, () => console.log(`{name} listening on ${{port}}`));\n"
        ),
        "README.md": f"# {name}\n\n```\nnpm install\nnpm start\n```\n",
    }


def _python_package(name: str) -> Dict[str, str]:
    module = name.replace("-", "_").lower()
    return {
        "pyproject.toml": (
            "[build-system]\n"
            'requires = ["setuptools>=64"]\n'
            'build-backend = "setuptools.build_meta"\n\n'
            "[project]\n"
            f'name = "{name}"\n'
            'version = "0.1.0"\n'
        ),
        f"{module}/__init__.py": f'"""{name}."""\n\n__version__ = "0.1.0"\n',
        "tests/test_version.py": (
            f"from {module} import __version__\n\n\n"
            "def test_version():\n"
            '    assert __version__ == "0.1.0"\n'
        ),
        "README.md": f"# {name}\n\n```\npip install -e .\npytest\n```\n",
    }


def _static_site(name: str) -> Dict[str, str]:
    return {
        "index.html": (
            "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n"
            "  <meta charset=\"utf-8\">\n"
            f"  <title>{name}</title>\n"
            "  <link rel=\"stylesheet\" href=\"style.css\">\n"
            "</head>\n<body>\n"
            f"  <h1>{name}</h1>\n"
            "  <script src=\"script.js\"></script>\n"
            "</body>\n</html>\n"
        ),
        "style.css": "body {\n  font-family: sans-serif;\n  margin: 2rem;\n}\n",
        "script.js": f"console.log('{name} loaded');\n",
    }


TEMPLATES: Dict[str, Callable[[str], Dict[str, str]]] = {
    "node-api": _node_api,
    "python-package": _python_package,
    "static-site": _static_site,
}
ALIASES = {
    "express-api": "node-api",
    "express": "node-api",
    "node": "node-api",
    "python": "python-package",
    "static": "static-site",
    "html": "static-site",
}
NEXT_STEPS: Dict[str, List[str]] = {
    "node-api": ["cd {name}", "npm install", "npm start"],
    "python-package": ["cd {name}", "pip install -e .", "pytest"],
    "static-site": ["open {name}/index.html"],
}


class Scaffolder:
    def __init__(self, file_ops: FileOps):
        self.file_ops = file_ops

    def scaffold(self, kind: str, name: str) -> dict:
        template = ALIASES.get(kind.lower(), kind.lower())
        if template not in TEMPLATES:
            raise FileOperationError(
                f"Unknown project type '{kind}'. Available: {', '.join(sorted(TEMPLATES))}"
            )
        if not _NAME_RE.match(name):
            raise FileOperationError(
                f"Invalid project name '{name}'. Use letters, digits, '-' and '_'."
            )
        target = self.file_ops._resolve(name)
        if target.exists() and any(target.iterdir()):
            raise FileOperationError(f"Directory '{name}' already exists and is not empty.")

        created = []
        for rel, content in TEMPLATES[template](name).items():
            path = f"{name}/{rel}"
            self.file_ops.write_file(path, content)
            created.append(path)
        return {
            "success": True,
            "type": template,
            "name": name,
            "files_created": created,
            "next_steps": [step.format(name=name) for step in NEXT_STEPS[template]],
        }
