import typer

import cli.cli

if __name__ == "__main__":
    # Same entry point as the installed coach-rag script
    typer_app: typer.Typer = cli.cli.app
    typer_app(prog_name="coach-rag")
