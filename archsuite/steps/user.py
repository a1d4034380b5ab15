from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import CommandError, EnvironmentCheckError
from ..lib.chroot import chroot_cmd, chroot_has, user_exists
from ..lib.pkg import chroot_install, ensure_in_target
from ..lib.prompt import ask_menu
from ..lib.validate import USERNAME_MAX, clean, valid_username
from . import StepContext, require_installed_target, set_password, step_main, write_target_file

logger = logging.getLogger(__name__)

XDG_DIRS = ("Desktop", "Documents", "Downloads", "Music", "Pictures", "Videos")
WHEEL_RULE = "%wheel ALL=(ALL:ALL) ALL"


@dataclass(frozen=True)
class ShellChoice:
    label: str
    path: str
    # Package providing the shell, when it may be missing from the target.
    package: Optional[str] = None
    rc_file: Optional[str] = None
    rc_text: str = ""


BASHRC = """# ~/.bashrc

# If not running interactively, don't do anything
[[ $- != *i* ]] && return

alias ls='ls --color=auto'
alias ll='ls -alF'
alias la='ls -A'
alias grep='grep --color=auto'

HISTCONTROL=ignoreboth
HISTSIZE=1000
HISTFILESIZE=2000

PS1='\\[\\033[01;32m\\]\\u@\\h\\[\\033[00m\\]:\\[\\033[01;34m\\]\\w\\[\\033[00m\\]\\$ '
"""

ZSHRC = """# ~/.zshrc

HISTFILE=~/.histfile
HISTSIZE=1000
SAVEHIST=1000
setopt appendhistory

autoload -U compinit
compinit

alias ls='ls --color=auto'
alias ll='ls -alF'
alias la='ls -A'
alias grep='grep --color=auto'

autoload -U promptinit
promptinit
prompt adam1
"""

FISH_CONFIG = """# ~/.config/fish/config.fish

alias ll='ls -alF'
alias la='ls -A'

set fish_greeting "Welcome to fish, the friendly interactive shell"
"""

SHELLS: Tuple[ShellChoice, ...] = (
    ShellChoice("bash (default)", "/bin/bash", None, ".bashrc", BASHRC),
    ShellChoice("zsh", "/bin/zsh", "zsh", ".zshrc", ZSHRC),
    ShellChoice("fish", "/usr/bin/fish", "fish", ".config/fish/config.fish", FISH_CONFIG),
)

AUR_HELPERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("yay", ("git", "base-devel")),
    ("paru", ("git", "base-devel", "rust")),
)


def enable_wheel(sudoers: str) -> str:
    """Uncomment the stock ``%wheel ALL=(ALL:ALL) ALL`` rule."""

    return re.sub(r"(?m)^#\s*%wheel ALL=\(ALL:ALL\) ALL[ \t]*$", WHEEL_RULE, sudoers)


def useradd_argv(username: str, *, groups: List[str], shell: str, fullname: Optional[str]) -> List[str]:
    argv = ["useradd", "-m", "-G", ",".join(groups), "-s", shell]
    if fullname:
        argv += ["-c", fullname]
    return argv + [username]


def aur_build_script(username: str, helper: str) -> str:
    return (
        f"cd /home/{username} && "
        f"git clone https://aur.archlinux.org/{helper}.git && "
        f"cd {helper} && makepkg -si --noconfirm && "
        f"cd .. && rm -rf {helper}"
    )


class UserStep:
    """Create the login user with sudo rights, shell setup and an optional AUR helper."""

    step_id = "user"

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.cfg
        p = ctx.prompter
        require_installed_target(ctx)
        if not chroot_has(ctx.target, "sudo", dry_run=ctx.dry_run):
            raise EnvironmentCheckError("sudo is not installed. Please run base-setup first.")

        username = self.ask_username(ctx)
        fullname = clean(p.ask(f"Enter full name for {username} (optional): "))
        shell = self.ask_shell(ctx)
        groups = list(cfg.user_groups)

        p.show("Creating user account...")
        p.show(f"  Username: {username}")
        p.show(f"  Full name: {fullname or 'Not specified'}")
        p.show(f"  Shell: {shell.path}")
        p.show(f"  Groups: {','.join(groups)}")
        chroot_cmd(
            ctx.target,
            useradd_argv(username, groups=groups, shell=shell.path, fullname=fullname),
            dry_run=ctx.dry_run,
        )
        logger.info("User account %s created", username)

        set_password(ctx, username)
        self.configure_sudo(ctx)
        self.setup_environment(ctx, username, shell)
        self.install_aur_helper(ctx, username)

        p.show(f"User '{username}' has been created with sudo privileges (via wheel group).")

    def ask_username(self, ctx: StepContext) -> str:
        p = ctx.prompter
        while True:
            username = p.ask("Enter username for the new user: ").strip()
            if not valid_username(username):
                p.show("Invalid username. Use only lowercase letters, numbers, underscores, and hyphens.")
                p.show(f"   Username must start with a letter or underscore and be max {USERNAME_MAX} characters.")
                continue
            if user_exists(ctx.target, username, dry_run=ctx.dry_run):
                p.show(f"User '{username}' already exists. Please choose a different username.")
                continue
            return username

    def ask_shell(self, ctx: StepContext) -> ShellChoice:
        p = ctx.prompter
        labels = [s.label for s in SHELLS] + ["Custom shell"]
        while True:
            p.show("Available shells:")
            idx = ask_menu(p, "Select shell", labels)
            if idx < len(SHELLS):
                shell = SHELLS[idx]
                if shell.package:
                    ensure_in_target(ctx.target, shell.package, shell.package, dry_run=ctx.dry_run)
                return shell

            path = p.ask("Enter shell path: ").strip()
            if path and (ctx.dry_run or chroot_cmd(ctx.target, ["test", "-x", path], check=False).ok):
                return ShellChoice("custom", path)
            p.show(f"Shell '{path}' not found or not executable.")

    def configure_sudo(self, ctx: StepContext) -> None:
        logger.info("Configuring sudo access for wheel group...")
        sudoers = ctx.target_path("etc/sudoers")
        if ctx.dry_run:
            logger.info("Would enable %r in %s", WHEEL_RULE, sudoers)
            return

        backup = sudoers.with_name("sudoers.backup")
        shutil.copy2(sudoers, backup)
        sudoers.write_text(enable_wheel(sudoers.read_text(encoding="utf-8")), encoding="utf-8")

        check = chroot_cmd(ctx.target, ["visudo", "-c"], check=False)
        if not check.ok:
            logger.error("Sudoers file validation failed. Restoring backup.")
            shutil.copy2(backup, sudoers)
            raise CommandError(check.argv, check.returncode, check.stderr)
        logger.info("Sudo access configured for wheel group.")

    def setup_environment(self, ctx: StepContext, username: str, shell: ShellChoice) -> None:
        home = f"home/{username}"
        logger.info("Creating user directories...")
        for d in XDG_DIRS:
            path = ctx.target_path(f"{home}/{d}")
            if ctx.dry_run:
                logger.info("Would create %s", path)
            else:
                path.mkdir(parents=True, exist_ok=True)

        if shell.rc_file:
            write_target_file(ctx, f"{home}/{shell.rc_file}", shell.rc_text)

        chroot_cmd(ctx.target, ["chown", "-R", f"{username}:{username}", f"/{home}"], dry_run=ctx.dry_run)
        logger.info("User environment configured.")

    def install_aur_helper(self, ctx: StepContext, username: str) -> None:
        p = ctx.prompter
        p.show("AUR helpers make it easier to install packages from the Arch User Repository.")
        labels = [f"{name}{' (recommended)' if i == 0 else ''}" for i, (name, _) in enumerate(AUR_HELPERS)]
        idx = ask_menu(p, "Select AUR helper", labels + ["Skip AUR helper installation"])
        if idx >= len(AUR_HELPERS):
            logger.info("Skipping AUR helper installation.")
            return

        helper, deps = AUR_HELPERS[idx]
        logger.info("Installing %s...", helper)
        chroot_install(ctx.target, list(deps), needed=True, dry_run=ctx.dry_run)
        chroot_cmd(
            ctx.target,
            ["sudo", "-u", username, "bash", "-c", aur_build_script(username, helper)],
            interactive=True,
            dry_run=ctx.dry_run,
        )
        logger.info("%s installed successfully.", helper)


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(UserStep(), argv, prog="user-setup")
