"""Command line entry for chatting with a Homebot assistant."""

from cli.chat import main as run_chat_cli


def main() -> None:
    """Run the terminal chat client."""
    run_chat_cli()


if __name__ == "__main__":
    main()
