"""Wiring: build the orchestrator and checkpoint store from Settings."""

from __future__ import annotations

from dataclasses import dataclass

from blacksmith.checkpoints import CheckpointStore
from blacksmith.config import Settings
from blacksmith.generator import Generator
from blacksmith.generators import create_generator, resolve_generator_name
from blacksmith.orchestrator import UpdateOrchestrator
from blacksmith.workspace import WorkspaceLayout

__all__ = ["Services", "build_services"]


@dataclass(frozen=True)
class Services:
    """Process-wide collaborators; one instance per process or per test."""

    settings: Settings
    layout: WorkspaceLayout
    generator: Generator
    orchestrator: UpdateOrchestrator
    store: CheckpointStore


def build_services(settings: Settings, *, generator: Generator | None = None) -> Services:
    """Create every collaborator, sharing one WorkspaceLayout between them."""
    layout = WorkspaceLayout(settings.root)
    resolved_generator = generator or create_generator(resolve_generator_name(settings.generator))
    orchestrator = UpdateOrchestrator(
        layout,
        resolved_generator,
        settings.targets,
        template_dir=settings.template_dir,
        spec_commit_message=settings.spec_commit_message,
    )
    store = CheckpointStore(layout, settings.targets)
    return Services(
        settings=settings,
        layout=layout,
        generator=resolved_generator,
        orchestrator=orchestrator,
        store=store,
    )
