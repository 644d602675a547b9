import argparse
import logging
import os
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import fleet, ops, store, system
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, PLATFORMS, REGISTRY_FILE
from .errors import ValidationError
from .fleet import Repository
from .remote import classify
from .topology import Role

logger = logging.getLogger(APP_NAME)
console = Console()


def setup_logging(verbose: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, also log to stderr.
        max_log_size (int): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    try:
        file_handler = RotatingFileHandler(
            LOG_FILE, maxBytes=max_log_size, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        console.print(f"[yellow]Could not open log file {LOG_FILE}: {e}[/yellow]")

    if verbose:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)


def _fail(message: str) -> None:
    console.print(f"[bold red]ERROR:[/bold red] {message}")
    sys.exit(1)


def _report(result: ops.OperationResult, label: str) -> None:
    """Prints an operation outcome and exits non-zero on failure."""
    if result.success:
        console.print(f"[bold green]SUCCESS:[/bold green] {result.message or label}")
        return
    _fail(f"{label} failed: {result.error}")


def _resolve_repo(path_str: str) -> Repository:
    """Inspects a working copy or exits with an error."""
    path = Path(path_str).resolve()
    repo = fleet.inspect_repository(path)
    if repo is None:
        _fail(f"Not a git repository: {path}")
    return repo


def _registered() -> list[Repository]:
    return fleet.scan_repositories(system.get_registered_repos())


def add_repo(path_str: str) -> None:
    """Registers a working copy."""
    path = Path(path_str).resolve()
    if not (path / ".git").exists():
        _fail(f"Not a git repository: {path}")
    if system.register_repo(path):
        console.print(f"✔ Registered: [cyan]{path}[/cyan]", style="green")
    else:
        console.print("Already registered.", style="dim")


def remove_repo(path_str: str) -> None:
    """Forgets a working copy (files on disk are untouched)."""
    path = Path(path_str)
    if system.unregister_repo(path):
        console.print(f"✔ Unregistered: [cyan]{path.resolve()}[/cyan]", style="green")
    else:
        console.print(f"Path not registered: [cyan]{path}[/cyan]", style="yellow")


def _role_label(topology, name: str) -> str:
    role = topology.role_of(name)
    if role is Role.MAIN:
        return "[bold magenta]main[/bold magenta]"
    if role is Role.SUBORDINATE:
        return "[magenta]subordinate[/magenta]"
    return ""


def list_repos() -> None:
    """Lists registered repositories with branch, platform, changes and sync role."""
    if not REGISTRY_FILE.exists():
        console.print("[yellow]Registry is empty.[/yellow]")
        return

    topology = store.load_topology()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Platform")
    table.add_column("Changes", justify="right")
    table.add_column("Role")

    registered = system.get_registered_repos()
    found = {r.path: r for r in fleet.scan_repositories(registered)}
    for path in registered:
        repo = found.get(path)
        if repo is None:
            table.add_row(str(path), "[red]Missing[/red]", "-", "-", "")
            continue
        changes = (
            f"[yellow]{repo.modified}M {repo.staged}S {repo.untracked}U[/yellow]"
            if repo.has_changes
            else "[green]clean[/green]"
        )
        table.add_row(
            repo.name, repo.branch, repo.platform, changes, _role_label(topology, repo.name)
        )

    console.print(table)


def show_info(path_str: str) -> None:
    """Displays detailed state of one repository."""
    path = Path(path_str).resolve()
    repo = fleet.inspect_repository(path, detailed=True)
    if repo is None:
        _fail(f"Not a git repository: {path}")

    config = Config.load(path)
    auth = config.platform_auth(repo.platform)
    topology = store.load_topology()

    content = Text()
    content.append("Path:     ", style="bold")
    content.append(f"{repo.path}\n")
    content.append("Branch:   ", style="bold")
    content.append(f"{repo.branch}\n")
    content.append("Remote:   ", style="bold")
    content.append(f"{repo.remote_url or '-'}\n")
    content.append("Platform: ", style="bold")
    content.append(f"{repo.platform}\n")
    content.append("Auth:     ", style="bold")
    if repo.platform in config.platforms:
        content.append("SSH key\n" if auth.auth_type == "ssh" else "Password / Token\n")
    else:
        content.append("-\n", style="dim")
    content.append("Pending:  ", style="bold")
    content.append(
        f"{repo.modified} modified, {repo.staged} staged, {repo.untracked} untracked\n"
    )
    if repo.last_commit:
        content.append("Last:     ", style="bold")
        content.append(f"{repo.last_commit.message} ", style="")
        content.append(f"({repo.last_commit.date})", style="dim")

    role = topology.role_of(repo.name)
    if role is Role.MAIN:
        subs = ", ".join(topology.subordinates_of(repo.name))
        content.append(f"\nSync:     main -> {subs}", style="magenta")
    elif role is Role.SUBORDINATE:
        group = topology.group_of(repo.name)
        content.append(f"\nSync:     subordinate of {group.main}", style="magenta")

    console.print(Panel(content, title=repo.name, expand=False))


def sync_current(path_str: str, message: str | None) -> None:
    """Commits and pushes a repository, mirroring it into its subordinates."""
    main = _resolve_repo(path_str)
    config = Config.load(main.path)
    topology = store.load_topology()

    with console.status(f"[bold blue]Syncing {main.name}...[/bold blue]", spinner="dots"):
        report = ops.sync_group(main, _registered(), topology, config, message)

    if report.publish is not None:
        _report(report.publish, "Commit and push")
        return

    for name in report.skipped:
        console.print(f"[yellow]SKIPPED:[/yellow] {name} is not registered.")

    for result in report.results:
        name = result.subordinate.name
        if result.success:
            how = "pulled" if result.same_remote else "mirrored"
            console.print(f"[bold green]SUCCESS:[/bold green] {name} ({how})")
        else:
            console.print(
                f"[bold red]FAILED:[/bold red] {name} at {result.stage.value}: {result.error}"
            )
            if result.tree_modified:
                console.print(
                    f"   [yellow]{name}'s working tree was modified and may be inconsistent.[/yellow]"
                )

    if not report.success:
        failed = sum(1 for r in report.results if not r.success)
        _fail(f"{failed} of {len(report.results)} subordinate(s) failed.")


def clone(url: str, target_dir: str, name: str | None, platform: str | None) -> None:
    """Clones a repository using its platform's auth policy and registers it."""
    platform = platform or classify(url)
    config = Config.load()
    auth = config.platform_auth(platform)

    with console.status(f"[bold blue]Cloning {url}...[/bold blue]", spinner="dots"):
        result = ops.clone_repo(url, Path(target_dir).resolve(), name, auth)

    _report(result, "Clone")
    system.register_repo(result.data)


def manage_groups(args: argparse.Namespace) -> None:
    """Handles `group bind|remove|clear|list`."""
    topology = store.load_topology()

    if args.group_command == "bind":
        try:
            group_id = topology.bind(args.main, args.subordinates)
        except ValidationError as e:
            _fail(str(e))
        store.save_topology(topology)
        console.print(
            f"[bold green]SUCCESS:[/bold green] {args.main} -> "
            f"{', '.join(topology.subordinates_of(args.main))} [dim]({group_id})[/dim]"
        )
    elif args.group_command == "remove":
        if not topology.remove(args.group_id):
            _fail(f"No such group: {args.group_id}")
        store.save_topology(topology)
        console.print(f"✔ Removed group {args.group_id}", style="green")
    elif args.group_command == "clear":
        topology.clear()
        store.save_topology(topology)
        console.print("✔ All sync groups cleared.", style="green")
    else:
        if not len(topology):
            console.print("[dim]No sync groups.[/dim]")
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Group", style="dim")
        table.add_column("Main", style="cyan")
        table.add_column("Subordinates")
        for group in topology.groups:
            table.add_row(group.group_id, group.main, ", ".join(group.subordinates))
        console.print(table)


def run_batch(operation: str, names: list[str]) -> None:
    """Runs commit/push/pull over the selected (default: all) registered repositories."""
    repos = _registered()
    if names:
        repos = [r for r in repos if r.name in names]
    if not repos:
        _fail("No repositories to operate on.")

    config = Config.load()
    with console.status(
        f"[bold blue]Batch {operation} over {len(repos)} repositories...[/bold blue]",
        spinner="dots",
    ):
        report = ops.run_batch(operation, repos, config)

    for name, result in report.results.items():
        if result.success:
            console.print(f"   [green]✔[/green] {name}")
        else:
            console.print(f"   [red]✘[/red] {name}: {result.error}")

    style = "bold green" if report.failed == 0 else "bold yellow"
    console.print(
        f"[{style}]Batch {operation}: {report.succeeded} succeeded, "
        f"{report.failed} failed.[/{style}]"
    )
    if report.succeeded == 0:
        sys.exit(1)


def stash(path_str: str, action: str, message: str) -> None:
    path = Path(path_str).resolve()
    if action == "list":
        result = ops.stash_list(path)
        if not result.success:
            _fail(result.error or "stash list failed")
        if not result.data:
            console.print("[dim]No stash entries.[/dim]")
        for entry in result.data:
            console.print(f"   {entry}")
    elif action == "pop":
        _report(ops.stash_pop(path), "Stash pop")
    else:
        _report(ops.stash_push(path, message), "Stash")


def passthrough(path_str: str, command: str, args: list[str]) -> None:
    """Runs an arbitrary git subcommand and relays its output."""
    result = ops.run_git(Path(path_str).resolve(), command, args)
    if result.stdout:
        console.print(result.stdout, end="", markup=False, highlight=False)
    if result.stderr:
        console.print(result.stderr, end="", style="red", markup=False, highlight=False)
    if not result.success:
        sys.exit(result.exit_code or 1)


def check_git() -> None:
    """Reports whether git is installed and which SSH key would be used by default."""
    version = system.git_version()
    if version:
        console.print(f"[bold green]✔[/bold green] {version}")
    else:
        _fail("git was not found on PATH.")
    key = system.detect_default_ssh_key()
    if key:
        console.print(f"[green]✔[/green] Default SSH key: {key}")
    else:
        console.print(f"[yellow]No default SSH key in {system.get_ssh_dir()}[/yellow]")


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# Git Tandem Configuration\n\n"
                "[core]\n"
                '# remote_name = "origin"\n\n'
                "[platforms.GitHub]\n"
                '# auth_type = "ssh"        # or "password"\n'
                '# username = ""\n'
                '# email = ""\n'
                '# ssh_key_path = "~/.ssh/id_ed25519"\n'
                "# use_proxy = false\n"
                '# proxy_url = "https://gh-proxy.com"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        elif sys.platform == "win32":
            editor = "notepad"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except Exception as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Tandem Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("core", "remote_name", "str", '"origin"', "Remote pushed to and pulled from.")
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )
    table.add_row(
        "sync", "ignore", "list", "[]", "Extra names or '*suffix' patterns never mirrored."
    )
    table.add_row("", "default_message", "str", '"Update"', "Commit message when none is given.")
    table.add_row(
        f"platforms.<{'|'.join(PLATFORMS)}>",
        "auth_type",
        "str",
        '"ssh"',
        "'ssh' (key file) or 'password' (HTTPS token).",
    )
    table.add_row("", "username / email", "str", '""', "Commit identity; username is also the HTTPS user.")
    table.add_row("", "password", "str", '""', "Access token (password mode only).")
    table.add_row("", "ssh_key_path", "str", '""', "Key file; a '.pub' path resolves to its private key.")
    table.add_row("", "use_proxy / proxy_url", "bool / str", "false / \"\"", "HTTP(S) proxy or GitHub mirror prefix.")

    console.print(table)


class TandemHelpFormatter(argparse.HelpFormatter):
    """Groups subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []
            groups = {
                "Repositories": ["add", "remove", "list", "info", "open"],
                "Changes": ["commit", "push", "pull", "stash", "git"],
                "Synchronization": ["sync", "group", "batch", "clone"],
                "Setup": ["config", "check"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=argparse.SUPPRESS,
        formatter_class=TandemHelpFormatter,
    )
    parser.add_argument(
        "-C", dest="repo", default=".", help="Repository path (default: current directory)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")

    subparsers = parser.add_subparsers(dest="command")

    add_parser = subparsers.add_parser("add", help="Register a repository")
    add_parser.add_argument("path", nargs="?", default=None)
    remove_parser = subparsers.add_parser("remove", help="Stop tracking a repository")
    remove_parser.add_argument("path", nargs="?", default=None)
    subparsers.add_parser("list", help="List registered repositories")
    subparsers.add_parser("info", help="Show repository details")
    subparsers.add_parser("open", help="Open the repository folder")

    commit_parser = subparsers.add_parser("commit", help="Stage all and commit with a change summary")
    commit_parser.add_argument("-m", "--message", default="")
    commit_parser.add_argument("--push", action="store_true", help="Push after committing")
    subparsers.add_parser("push", help="Push the current branch")
    subparsers.add_parser("pull", help="Pull the current branch")

    stash_parser = subparsers.add_parser("stash", help="Stash changes (push/pop/list)")
    stash_parser.add_argument("action", nargs="?", choices=["push", "pop", "list"], default="push")
    stash_parser.add_argument("-m", "--message", default="")

    git_parser = subparsers.add_parser("git", help="Run a git subcommand in the repository")
    git_parser.add_argument("git_command")
    git_parser.add_argument("git_args", nargs=argparse.REMAINDER)

    sync_parser = subparsers.add_parser("sync", help="Commit, push and propagate to subordinates")
    sync_parser.add_argument("-m", "--message", default="")

    group_parser = subparsers.add_parser("group", help="Manage sync groups")
    group_sub = group_parser.add_subparsers(dest="group_command")
    bind_parser = group_sub.add_parser("bind", help="Bind a main repository to subordinates")
    bind_parser.add_argument("main")
    bind_parser.add_argument("subordinates", nargs="+")
    group_remove = group_sub.add_parser("remove", help="Delete a sync group")
    group_remove.add_argument("group_id")
    group_sub.add_parser("clear", help="Delete all sync groups")
    group_sub.add_parser("list", help="List sync groups")

    batch_parser = subparsers.add_parser("batch", help="Commit/push/pull many repositories")
    batch_parser.add_argument("operation", choices=list(ops.BATCH_OPERATIONS))
    batch_parser.add_argument("names", nargs="*", help="Repository names (default: all)")

    clone_parser = subparsers.add_parser("clone", help="Clone and register a repository")
    clone_parser.add_argument("url")
    clone_parser.add_argument("--dir", default=".", help="Parent directory (default: .)")
    clone_parser.add_argument("--name", default=None, help="Folder name (default: from URL)")
    clone_parser.add_argument("--platform", choices=PLATFORMS, default=None)

    config_parser = subparsers.add_parser("config", help="Open global config file or view options")
    config_parser.add_argument("--list", "-l", action="store_true", help="List all configuration options")
    subparsers.add_parser("check", help="Verify git installation and default SSH key")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Tandem CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, Config.load().limits.max_log_size)

    repo_path = args.repo

    if args.command == "add":
        add_repo(args.path or repo_path)
    elif args.command == "remove":
        remove_repo(args.path or repo_path)
    elif args.command == "list":
        list_repos()
    elif args.command == "info":
        show_info(repo_path)
    elif args.command == "open":
        system.get_system().open_folder(Path(repo_path).resolve())
    elif args.command in ("commit", "push", "pull"):
        repo = _resolve_repo(repo_path)
        config = Config.load(repo.path)
        auth = config.platform_auth(repo.platform)
        remote = config.core.remote_name
        if args.command == "commit" and args.push:
            _report(
                ops.commit_and_push(repo.path, args.message, auth, remote, config.sync.default_message),
                "Commit and push",
            )
        elif args.command == "commit":
            _report(ops.commit_repo(repo.path, args.message, auth, config.sync.default_message), "Commit")
        elif args.command == "push":
            with console.status(f"[bold blue]Pushing {repo.name}...[/bold blue]", spinner="dots"):
                result = ops.push_repo(repo.path, auth, remote)
            _report(result, "Push")
        else:
            with console.status(f"[bold blue]Pulling {repo.name}...[/bold blue]", spinner="dots"):
                result = ops.pull_repo(repo.path, auth, remote)
            _report(result, "Pull")
    elif args.command == "stash":
        stash(repo_path, args.action, args.message)
    elif args.command == "git":
        passthrough(repo_path, args.git_command, args.git_args)
    elif args.command == "sync":
        sync_current(repo_path, args.message)
    elif args.command == "group":
        manage_groups(args)
    elif args.command == "batch":
        run_batch(args.operation, args.names)
    elif args.command == "clone":
        clone(args.url, args.dir, args.name, args.platform)
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
    elif args.command == "check":
        check_git()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
