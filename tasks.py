# type: ignore
from invoke import task


@task
def venv(ctx):
    """Initialize development environment with uv."""
    print("Initializing development environment with uv...")
    ctx.run("uv sync --extra test --extra dev")
    print("Development environment initialization complete!")


@task
def clean(ctx):
    """
    Remove all files and directories that are not under version control.
    Use caution as this operation cannot be undone and might remove untracked files.

    """

    ctx.run("git clean -nfdx")

    response = (
        input("Are you sure you want to remove all untracked files? (y/n) [n]: ")
        .strip()
        .lower()
    )
    if response == "y":
        ctx.run("git clean -fdx")


@task
def lint(ctx):
    """Static analysis: ruff lint, ruff format check, mypy."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """Run tests with coverage information."""
    ctx.run("pytest --cov=macfinder --cov-report=term-missing", pty=True)


@task
def build_package(ctx):
    """Build sdist and wheel with uv."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")
