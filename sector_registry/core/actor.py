from dataclasses import dataclass

EDITOR_ROLES = ("admin", "editor")
ADMIN_ROLES = ("admin",)


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller, as handed over by the auth layer."""

    id: int
    role: str

    @property
    def can_edit(self) -> bool:
        return self.role in EDITOR_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
