"""Run the pokenft terminal client: ``python -m pokenft``."""

import asyncio

from prompt_toolkit.patch_stdout import patch_stdout

from pokenft.cli import PokeNFTCmdlineApp


def main() -> None:
    app = PokeNFTCmdlineApp()

    with patch_stdout(raw=True):
        try:
            asyncio.run(app.runall())
        except KeyboardInterrupt:
            pass


if __name__ == "__main__":
    main()
