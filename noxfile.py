"""Nox sessions for Blacksmith development."""

from __future__ import annotations

import nox

nox.options.sessions = ["fmt", "lint", "typecheck", "tests"]
nox.options.reuse_existing_virtualenvs = True

PYTHON = "3.11"
SRC = "src/blacksmith"


@nox.session(python=False)
def fmt(session: nox.Session) -> None:
    """Run ruff formatter."""
    session.run("ruff", "format", "src", "tests", "noxfile.py")


@nox.session(python=False)
def lint(session: nox.Session) -> None:
    """Run ruff linter."""
    session.run("ruff", "check", "src", "tests", "--fix")


@nox.session(python=False)
def typecheck(session: nox.Session) -> None:
    """Run mypy over the package."""
    session.run("mypy", SRC)


@nox.session(python=False)
def tests(session: nox.Session) -> None:
    """Run the pytest suite; extra arguments are passed through."""
    session.run("pytest", *session.posargs)


@nox.session(python=False)
def doctor(session: nox.Session) -> None:
    """Check that git and the configured generator are usable."""
    session.run("blacksmith", "doctor", *session.posargs)
