"""
Value types shared by the permission engine.
"""
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class PermissionKey:
    """A (module, action) pair, written module:action."""

    module: str
    action: str

    def __post_init__(self):
        if not self.module or not self.action:
            raise ValueError(f"Permission key needs a module and an action, got {self.module!r}:{self.action!r}")
        if ":" in self.module:
            raise ValueError(f"Module name may not contain ':': {self.module!r}")

    def __str__(self) -> str:
        return f"{self.module}:{self.action}"

    @classmethod
    def parse(cls, value: str) -> "PermissionKey":
        module, sep, action = value.partition(":")
        if not sep:
            raise ValueError(f"Permission key must look like module:action, got {value!r}")
        return cls(module.strip(), action.strip())


@dataclass(frozen=True)
class Principal:
    """The caller a permission check is made for, as supplied by the identity provider."""

    id: str
    role: str
