# mini_arch/utils/textedit.py
"""
Line-oriented edits of the configuration files shipped by Arch packages
(/etc/locale.gen, /etc/mkinitcpio.conf, /etc/default/grub, /etc/sudoers).

Every helper takes the file content and returns the new content, so the
same edit can be shown in dry-run mode and unit tested without a target root.
"""
import re
from typing import List, Tuple

WHEEL_SUDO_RULE = "%wheel ALL=(ALL:ALL) ALL"


def uncomment_locale(text: str, locale: str) -> Tuple[str, int]:
    """
    Uncomments the locale.gen entries that start with `locale`
    ('#en_US.UTF-8 UTF-8' -> 'en_US.UTF-8 UTF-8').

    Returns:
        Tuple[str, int]: The new text and the number of lines enabled.
    """
    pattern = re.compile(r"^#(" + re.escape(locale) + r"(?:[ \t].*)?)$", re.MULTILINE)
    return pattern.subn(r"\1", text)


def replace_hooks(text: str, hooks: List[str]) -> str:
    """Replaces the active HOOKS=(...) line of mkinitcpio.conf, appending one if there is none."""
    line = f"HOOKS=({' '.join(hooks)})"
    new_text, count = re.subn(r"^HOOKS=.*$", lambda _: line, text, flags=re.MULTILINE)
    if count:
        return new_text
    return _append_line(text, line)


def remove_option(text: str, key: str) -> str:
    """Drops every active `KEY=...` assignment."""
    return re.sub(r"^" + re.escape(key) + r"=.*(?:\n|$)", "", text, flags=re.MULTILINE)


def set_option(text: str, key: str, value: str) -> str:
    """
    Sets `KEY=value` in a shell-style config file, replacing active assignments
    or appending one. `value` is written verbatim, quote it if needed.
    """
    line = f"{key}={value}"
    new_text, count = re.subn(r"^" + re.escape(key) + r"=.*$", lambda _: line, text, flags=re.MULTILINE)
    if count:
        return new_text
    return _append_line(text, line)


def enable_wheel_sudo(text: str) -> Tuple[str, int]:
    """Uncomments the '%wheel ALL=(ALL:ALL) ALL' rule in sudoers."""
    pattern = re.compile(r"^#[ \t]*(" + re.escape(WHEEL_SUDO_RULE) + r")[ \t]*$", re.MULTILINE)
    return pattern.subn(r"\1", text)


def _append_line(text: str, line: str) -> str:
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}{line}\n"
