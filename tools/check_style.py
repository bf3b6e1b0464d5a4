#!/usr/bin/env python3
"""Check for banned Python constructions in safety_net source.

Banned constructions:

    Construction          Reason                             Use instead
    --------------------  ---------------------------------  ---------------------------
    import shlex          the tokenizer is the parsing       safety_net.core.tokenizer,
    from shlex import     authority, not stdlib              bash_quote/bash_join
    import subprocess     the hook judges commands, it       nothing: never run commands
    os.system(...)        never runs them
"""

import ast
import sys
from pathlib import Path

BANNED_MODULES = {
    "shlex": "banned, use safety_net.core.tokenizer for parsing",
    "subprocess": "banned, the hook must never execute commands",
}
BANNED_OS_CALLS = frozenset({"system", "popen", "execv", "execvp", "spawnv"})


def find_python_files(directory):
    """All .py files under directory, sorted, skipping caches."""
    return sorted(p for p in Path(directory).rglob("*.py") if "__pycache__" not in p.parts)


def check_source(source, filename="<string>"):
    """Return (lineno, description) for each banned construction in source."""
    tree = ast.parse(source, filename)
    errors = []

    for node in ast.walk(tree):
        lineno = getattr(node, "lineno", 0)

        if isinstance(node, ast.Import):
            for alias in node.names:
                root = alias.name.split(".")[0]
                if root in BANNED_MODULES:
                    errors.append((lineno, f"import {alias.name}: {BANNED_MODULES[root]}"))

        if isinstance(node, ast.ImportFrom) and node.module:
            root = node.module.split(".")[0]
            if root in BANNED_MODULES:
                errors.append((lineno, f"from {node.module} import: {BANNED_MODULES[root]}"))

        # os.system(...) and friends
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and isinstance(node.func.value, ast.Name)
            and node.func.value.id == "os"
            and node.func.attr in BANNED_OS_CALLS
        ):
            errors.append((lineno, f"os.{node.func.attr}(): banned, the hook must never execute commands"))

    return errors


def check_file(path):
    return check_source(Path(path).read_text(), str(path))


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0] if args else "src")
    if not src_dir.is_dir():
        print(f"Directory not found: {src_dir}")
        return 1

    files = find_python_files(src_dir)
    if not files:
        print(f"No Python files found in: {src_dir}")
        return 1

    found = []
    for path in files:
        try:
            found.extend((str(path), lineno, description) for lineno, description in check_file(path))
        except SyntaxError as e:
            print(f"Syntax error in {path}: {e}")
            return 1

    if found:
        print(f"Found {len(found)} banned construction(s):")
        for path, lineno, description in sorted(found):
            print(f"  {path}:{lineno}: {description}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

