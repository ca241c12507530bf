"""Main CLI entry point for crossbuild."""

import sys

from crossbuild.cli import build as build_cli


def main() -> None:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print("Usage: crossbuild <command> [args...]", file=sys.stderr)
        print("Commands:", file=sys.stderr)
        print(
            "  build    - Cross-compile every build for its target matrix",
            file=sys.stderr,
        )
        print("  targets  - Print the resolved target matrix per build", file=sys.stderr)
        sys.exit(1)

    command = sys.argv[1]

    if command == "build":
        build_cli.run_build_argv()
    elif command == "targets":
        build_cli.run_targets_argv()
    else:
        print(f"Error: Unknown command: {command}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
