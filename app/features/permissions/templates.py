"""
Bulk permission presets for a role.

Applying a template writes every (module, action) cell of the permission
grid for one role: actions in the template are granted, the rest revoked.
The writes run concurrently and are not atomic as a group; the report says
exactly which cells were stored and which failed. After a partial failure,
re-read the role with grants_for(role, fresh=True) instead of assuming.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from app.features.permissions.aliases import AliasTable
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.errors import UnknownTemplate
from app.features.permissions.keys import PermissionKey
from app.utils import get_logger


log = get_logger(__name__)


# Columns of the permission grid, in display order
GRID_ACTIONS: tuple[str, ...] = ("view", "create", "edit", "delete", "approve")

TEMPLATES: dict[str, tuple[str, ...]] = {
    "admin": ("view", "create", "edit", "approve"),
    "staff": ("view", "create", "edit"),
    "finance": ("view", "approve"),
    "driver": ("view",),
}


GrantWriter = Callable[[str, PermissionKey, bool], Awaitable[object]]


@dataclass
class TemplateFailure:
    key: str
    error: str


@dataclass
class TemplateReport:
    role: str
    template: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[TemplateFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


class TemplateApplier:
    def __init__(
        self,
        catalog: PermissionCatalog,
        aliases: AliasTable,
        write: GrantWriter,
        templates: dict[str, tuple[str, ...]] | None = None,
        grid_actions: tuple[str, ...] = GRID_ACTIONS,
    ):
        self.catalog = catalog
        self.aliases = aliases
        self.write = write
        self.templates = TEMPLATES if templates is None else templates
        self.grid_actions = grid_actions

    def plan(self, template: str) -> list[tuple[PermissionKey, bool]]:
        """Canonical (key, granted) writes the template expands to."""
        try:
            allowed = set(self.templates[template])
        except KeyError:
            raise UnknownTemplate(template) from None

        planned: dict[PermissionKey, bool] = {}
        for module in self.catalog.modules():
            for action in self.grid_actions:
                key = self.aliases.canonicalize(PermissionKey(module, action))
                planned[key] = planned.get(key, False) or action in allowed
        return list(planned.items())

    async def apply(self, role: str, template: str) -> TemplateReport:
        writes = self.plan(template)
        log.info(f"Applying '{template}' template to role '{role}' ({len(writes)} writes)")

        # Every write runs to completion, even after a sibling has failed
        results = await asyncio.gather(
            *(self.write(role, key, granted) for key, granted in writes),
            return_exceptions=True,
        )

        report = TemplateReport(role=role, template=template)
        for (key, _), result in zip(writes, results):
            if isinstance(result, BaseException):
                report.failed.append(TemplateFailure(key=str(key), error=str(result) or type(result).__name__))
            else:
                report.succeeded.append(str(key))

        if report.failed:
            log.warning(
                f"Template '{template}' partially applied to role '{role}': "
                f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
            )
        else:
            log.info(f"Template '{template}' applied to role '{role}'")
        return report
