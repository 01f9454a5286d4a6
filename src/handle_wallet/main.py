"""Application entry point for the handle wallet CLI."""

from __future__ import annotations

import sys

from handle_wallet.tools.handle_tool import main as _tool_main


def main() -> None:
    """Run the ``handle-wallet`` command."""
    sys.exit(_tool_main())


if __name__ == "__main__":
    main()
