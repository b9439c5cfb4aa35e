"""In-place patching of the backend server's network id declaration."""

import re
from dataclasses import dataclass
from pathlib import Path

from ..shared.exceptions import (
    ConfigArtifactUnreadableError,
    ConfigPatternNotFoundError,
)
from .logging import get_logger


@dataclass(frozen=True)
class DeclarationLocator:
    """Where a value lives in a text artifact.

    ``pattern`` matches the whole declaration; ``template`` rebuilds it with
    ``{value}`` substituted.
    """

    pattern: re.Pattern
    template: str

    def render(self, value: str) -> str:
        return self.template.format(value=value)


NETWORK_ID_DECLARATION = DeclarationLocator(
    pattern=re.compile(r"const networkId = '[^']*';"),
    template="const networkId = '{value}';",
)


class ConfigPatcher:
    """Rewrites exactly one located declaration of a text artifact."""

    def __init__(
        self, path: Path | str, locator: DeclarationLocator = NETWORK_ID_DECLARATION
    ):
        self.path = Path(path)
        self.locator = locator
        self.logger = get_logger("cli.config_patcher")

    def render(self, content: str, value: str) -> str:
        """Return ``content`` with the first located declaration set to ``value``."""
        replacement = self.locator.render(value)
        # A callable replacement keeps backslashes in the value literal
        patched, count = self.locator.pattern.subn(
            lambda _: replacement, content, count=1
        )
        if count == 0:
            raise ConfigPatternNotFoundError(self.path, self.locator.pattern.pattern)
        return patched

    def patch(self, value: str) -> bool:
        """Write ``value`` into the artifact.

        Returns True if the file content changed. Patching twice with the same
        value leaves the file byte-identical.
        """
        try:
            with open(self.path, encoding="utf-8", newline="") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigArtifactUnreadableError(self.path, e) from e

        patched = self.render(content, value)

        try:
            with open(self.path, "w", encoding="utf-8", newline="") as f:
                f.write(patched)
        except OSError as e:
            raise ConfigArtifactUnreadableError(self.path, e) from e

        changed = patched != content
        self.logger.debug(
            f"Patched {self.path} with {value!r}"
            + ("" if changed else " (already up to date)")
        )
        return changed


__all__ = [
    "DeclarationLocator",
    "NETWORK_ID_DECLARATION",
    "ConfigPatcher",
]
