"""Shared Rich display functions for plans and errors.

Provides the table of planned steps shown before install and uninstall, and
the tree used to render an action error with its nested children.
"""

from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from nixctl.action.base import ActionDescription
from nixctl.action.errors import ActionError, ChildFailed, MultipleChildren
from nixctl.plan import InstallFailedError
from nixctl.utils.formatting import console, err_console


def create_descriptions_table(
    descriptions: list[ActionDescription],
    title: str = "Planned Actions",
    style: str = "execute",
) -> Table:
    """Create a Rich table listing planned steps.

    Args:
        descriptions: Steps to display, in the order they will run.
        title: Table title.
        style: Theme style for the step number.

    Returns:
        Rich Table configured for plan display.
    """
    table = Table(
        title=title,
        show_header=True,
        header_style="heading",
        border_style="border",
    )
    table.add_column("#", width=3, justify="right")
    table.add_column("Step")

    for index, description in enumerate(descriptions, start=1):
        lines = [escape(description.description)]
        lines.extend(f"[muted]  {escape(line)}[/muted]" for line in description.explanation)
        table.add_row(f"[{style}]{index}[/{style}]", "\n".join(lines))

    return table


def _add_error(parent: Tree, error: ActionError) -> None:
    node = parent.add(f"[tag]{escape(error.tag)}[/tag]")
    kind = error.kind
    if isinstance(kind, ChildFailed):
        _add_error(node, kind.error)
    elif isinstance(kind, MultipleChildren):
        for child in kind.errors:
            _add_error(node, child)
    else:
        node.add(f"[error]{escape(type(kind).__name__)}[/error]: {escape(str(kind))}")


def build_error_tree(error: ActionError, label: str = "Error") -> Tree:
    """Render an action error as a tree of tag, kind and nested children.

    Args:
        error: Error to render.
        label: Root label.

    Returns:
        Rich Tree with one branch per failed action.
    """
    tree = Tree(f"[error]{escape(label)}[/error]")
    _add_error(tree, error)
    return tree


def print_action_error(error: ActionError, label: str = "Error") -> None:
    """Print an action error tree to stderr."""
    err_console.print(build_error_tree(error, label))


def print_install_failure(failure: InstallFailedError) -> None:
    """Print the install failure and, if any, the failure of the revert."""
    print_action_error(failure.error, "Install failed")
    if failure.revert_error is None:
        err_console.print("[muted]The partial install was reverted.[/muted]")
    else:
        print_action_error(failure.revert_error, "Reverting the partial install failed")
        err_console.print(
            "[warning]The system may be partially modified, see the errors above.[/warning]"
        )


def print_plan_summary(pending: int, total: int) -> None:
    """Print how many top-level actions still have to run."""
    console.print(f"\n[muted]{pending} of {total} action(s) pending[/muted]")
