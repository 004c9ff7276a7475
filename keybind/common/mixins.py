"""
Mixins shared by configurable components.
"""

from __future__ import annotations

from typing import Any


class Configurable:
    """
    Lets keyword overrides win over Config values.

    LicenseServer uses this so ``LicenseServer(admin_password="x")`` beats
    KEYBIND_ADMIN_PASSWORD, which in turn beats the built-in default.
    """

    def apply_overrides(
        self,
        overrides: dict[str, Any],
        config_obj: Any,
        attr_list: list[str] | None = None,
    ) -> None:
        """
        Set each attribute in attr_list from overrides or config_obj.

        An override of None counts as not given, so CLI options left unset
        fall through to the config value stored under the upper-cased name.

        Args:
            overrides: Keyword overrides, possibly containing None values
            config_obj: Configuration object with uppercase attribute names
            attr_list: Lowercase attribute names to set on self
        """
        for attr in attr_list or []:
            value = overrides.get(attr)
            if value is None:
                value = getattr(config_obj, attr.upper(), None)
            setattr(self, attr, value)
