"""Shell completion scripts for doc-vector-index."""

from enum import Enum

import typer
from click.shell_completion import get_completion_class

PROG_NAME = "doc-vector-index"
COMPLETE_VAR = "_DOC_VECTOR_INDEX_COMPLETE"

completion_app = typer.Typer(help="Generate shell completion scripts.")


class Shell(str, Enum):
    """Supported shell types for completion."""

    bash = "bash"
    zsh = "zsh"
    fish = "fish"


def completion_script(shell: Shell) -> str:
    """Return the completion script for ``shell``.

    Raises:
        typer.BadParameter: If click has no completion support for the shell.
    """
    from doc_vector_index.cli import app

    completion_class = get_completion_class(shell.value)
    if completion_class is None:
        raise typer.BadParameter(f"Unsupported shell: {shell.value}")

    completer = completion_class(
        cli=typer.main.get_command(app),
        ctx_args={},
        prog_name=PROG_NAME,
        complete_var=COMPLETE_VAR,
    )
    return completer.source()


@completion_app.command(name="generate")
def generate_completion(
    shell: Shell = typer.Argument(..., help="Shell type (bash, zsh, fish)"),
) -> None:
    """Generate shell completion script.

    \b
    # Bash (add to ~/.bashrc):
    eval "$(doc-vector-index completion generate bash)"

    \b
    # Zsh (add to ~/.zshrc):
    eval "$(doc-vector-index completion generate zsh)"

    \b
    # Fish:
    doc-vector-index completion generate fish > ~/.config/fish/completions/doc-vector-index.fish
    """
    typer.echo(completion_script(shell))
